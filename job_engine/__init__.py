"""
Job Execution Engine.

Queues named shell-style jobs for immediate or scheduled execution,
dispatches them under a concurrency cap, and keeps a persistent run history
that is reconciled after a restart.
"""

__version__ = "1.0.0"
