"""
Engine state management for API integration.

Provides singleton access to the EngineService instance.
Initialized and started during the FastAPI lifespan.

Usage:
    from ._engine_state import get_engine_service, init_engine_service

    # In lifespan:
    service = init_engine_service(EngineConfig.from_env())
    await service.start()

    # In routers:
    service = get_engine_service()
"""

from typing import Optional

from ..config import EngineConfig
from ..scheduler.runners import CommandRunner
from ..scheduler.service import EngineService


# Global engine service instance
_engine_service: Optional[EngineService] = None


def init_engine_service(
    config: EngineConfig,
    runner: Optional[CommandRunner] = None,
) -> EngineService:
    """
    Initialize the engine service singleton.

    Returns the existing instance if one was already initialized (tests
    initialize it with a fake runner before the app starts).

    Args:
        config: Engine configuration
        runner: Optional execution collaborator override

    Returns:
        Initialized (not yet started) EngineService
    """
    global _engine_service

    if _engine_service is not None:
        return _engine_service

    _engine_service = EngineService.create(config, runner=runner)
    return _engine_service


def get_engine_service() -> EngineService:
    """
    Get the engine service singleton.

    Raises:
        RuntimeError: If engine service not initialized
    """
    if _engine_service is None:
        raise RuntimeError(
            "Engine service not initialized. "
            "Ensure init_engine_service() is called during startup."
        )

    return _engine_service


async def shutdown_engine_service() -> None:
    """
    Shutdown the engine service.

    Called during FastAPI lifespan shutdown.
    """
    global _engine_service

    if _engine_service is not None:
        await _engine_service.stop()
        _engine_service = None
