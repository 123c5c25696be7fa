"""
Pytest configuration and shared fixtures.
"""

import logging

import pytest
from fastapi.testclient import TestClient

from job_engine.api import _engine_state
from job_engine.api._engine_state import init_engine_service
from job_engine.config import EngineConfig
from job_engine.scheduler import PersistenceAdapter

from .helpers import FakeCommandRunner, MockClock


@pytest.fixture
def temp_db_path(tmp_path) -> str:
    """Path of a fresh SQLite database file."""
    return str(tmp_path / "job_engine.db")


@pytest.fixture
def persistence(temp_db_path: str) -> PersistenceAdapter:
    """Create a fresh PersistenceAdapter with empty database."""
    return PersistenceAdapter(temp_db_path)


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    """Controllable execution collaborator."""
    return FakeCommandRunner()


@pytest.fixture
def mock_clock() -> MockClock:
    """Create a mock clock at fixed time."""
    return MockClock()


@pytest.fixture
def engine_client(monkeypatch, temp_db_path, fake_runner: FakeCommandRunner):
    """
    Test client for the API with the engine serving inside the app lifespan.

    The engine uses a temporary database and the fake runner.
    """
    monkeypatch.setenv("JOB_ENGINE_DB_PATH", temp_db_path)
    monkeypatch.setenv("JOB_ENGINE_LOG_DIR", "")

    init_engine_service(
        EngineConfig(
            timeout_ms=500,
            max_concurrent_jobs=2,
            poll_interval=0.05,
            db_path=temp_db_path,
        ),
        runner=fake_runner,
    )

    from job_engine.api.main import app

    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        _engine_state._engine_service = None
        logger = logging.getLogger("job_engine")
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
        logger.propagate = True
