"""
API Schemas package.

Pydantic models for request/response validation.
"""

from .jobs import (
    JobSubmitRequest,
    JobResponse,
    JobRunResponse,
    JobSubmitResponse,
    JobRunListResponse,
    RunLogResponse,
)
from .engine import EngineStatusResponse

__all__ = [
    "JobSubmitRequest",
    "JobResponse",
    "JobRunResponse",
    "JobSubmitResponse",
    "JobRunListResponse",
    "RunLogResponse",
    "EngineStatusResponse",
]
