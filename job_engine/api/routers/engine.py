"""
Engine router.

Read-only control plane under /engine/*.
"""

from fastapi import APIRouter

from ..schemas.engine import EngineStatusResponse
from .._engine_state import get_engine_service


router = APIRouter()


@router.get("/status", response_model=EngineStatusResponse)
async def get_engine_status():
    """
    Get engine status.

    Returns:
    - dispatcher_state / is_running: Whether the dispatch loop is active
    - running_count / eligible_count: Current load and backlog
    - concurrency_limit / timeout_ms: Effective configuration
    - status_counts: Number of runs per status
    """
    service = get_engine_service()
    return EngineStatusResponse(**service.get_status())
