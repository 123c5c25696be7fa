"""
Engine status schemas.
"""

from typing import Dict

from pydantic import BaseModel, Field


class EngineStatusResponse(BaseModel):
    """Response from the engine status endpoint."""

    dispatcher_state: str = Field(..., description="STOPPED/RUNNING/STOPPING")
    is_running: bool = Field(..., description="Whether the dispatch loop is active")
    running_count: int = Field(default=0, description="Runs currently RUNNING")
    eligible_count: int = Field(default=0, description="PENDING or due SCHEDULED runs")
    concurrency_limit: int = Field(..., description="Maximum concurrent RUNNING runs")
    timeout_ms: int = Field(..., description="Execution timeout per run")
    status_counts: Dict[str, int] = Field(default_factory=dict, description="Runs per status")
