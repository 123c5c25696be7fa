"""
Scheduler Test Suite.

- Entity and persistence tests
- Run store invariant tests
- Admission, dispatcher, executor and reconciler tests
- End-to-end engine service tests
"""
