"""HTTP API for the job engine."""
