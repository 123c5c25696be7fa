"""Job engine test suite."""
