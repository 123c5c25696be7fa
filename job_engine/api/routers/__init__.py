"""
API Routers package.
"""

from . import jobs, engine

__all__ = ["jobs", "engine"]
