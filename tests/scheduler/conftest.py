"""
Scheduler Test Fixtures.

Base fixtures:
  - Empty database
  - Mocked clock at fixed time
  - Controllable command runner

Per-test fixtures:
  - Persisted runs in arbitrary states for reconciliation tests
"""

from datetime import datetime
from typing import Callable, Optional

import pytest

from job_engine.scheduler import (
    AdmissionService,
    Dispatcher,
    Executor,
    ExecutionKind,
    Job,
    JobRun,
    PersistenceAdapter,
    Reconciler,
    RunStatus,
    RunStore,
)

from tests.helpers import FakeCommandRunner, MockClock


# Short timeout so timeout paths finish quickly
TEST_TIMEOUT_SECONDS = 0.2


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def store(persistence: PersistenceAdapter) -> RunStore:
    """Create an empty RunStore backed by the test database."""
    run_store = RunStore(persistence)
    run_store.load()
    return run_store


@pytest.fixture
def admission(store: RunStore) -> AdmissionService:
    """AdmissionService on the real clock."""
    return AdmissionService(store)


@pytest.fixture
def executor(store: RunStore, fake_runner: FakeCommandRunner) -> Executor:
    """Create an Executor with the fake runner."""
    return Executor(store, fake_runner, timeout_seconds=TEST_TIMEOUT_SECONDS)


@pytest.fixture
def dispatcher_factory(store: RunStore, executor: Executor) -> Callable[..., Dispatcher]:
    """Factory for Dispatchers with a given concurrency limit."""

    def _create(concurrency_limit: int = 1, clock=None) -> Dispatcher:
        kwargs = {"clock": clock} if clock is not None else {}
        dispatcher = Dispatcher(
            store=store,
            executor=executor,
            concurrency_limit=concurrency_limit,
            poll_interval=0.05,  # Fast polling for tests
            **kwargs,
        )
        store.subscribe(dispatcher.notify)
        return dispatcher

    return _create


@pytest.fixture
def reconciler(store: RunStore, mock_clock: MockClock) -> Reconciler:
    """Reconciler on the mock clock."""
    return Reconciler(store, clock=mock_clock)


# =============================================================================
# Record Factory Fixtures
# =============================================================================


@pytest.fixture
def add_run(store: RunStore, mock_clock: MockClock) -> Callable:
    """
    Factory fixture inserting a job and its run directly into the store.

    Bypasses admission so any status (including RUNNING) can be seeded.
    """

    def _create(
        status: RunStatus = RunStatus.PENDING,
        start_time: Optional[datetime] = None,
        name: str = "test-job",
        command: str = "echo",
        args: str = "hi",
    ) -> JobRun:
        kind = ExecutionKind.SCHEDULED if status == RunStatus.SCHEDULED else ExecutionKind.IMMEDIATE
        start = start_time or mock_clock()
        job = Job.create(
            name=name,
            command=command,
            args=args,
            execution_kind=kind,
            scheduled_time=start if kind == ExecutionKind.SCHEDULED else None,
            created_at=mock_clock(),
        )
        run = JobRun.create(
            job_id=job.job_id,
            status=status,
            start_time=start,
            created_at=mock_clock(),
        )
        if run.is_terminal():
            run.end_time = mock_clock()
            run.exit_code = 0 if status == RunStatus.SUCCESS else 1
        _, stored = store.add(job, run)
        return stored

    return _create


# =============================================================================
# Assertion Helpers
# =============================================================================


def assert_run_status(store: RunStore, run_id: str, expected: RunStatus):
    """Assert a run has the expected status."""
    run = store.get_run(run_id)
    assert run is not None, f"JobRun {run_id} not found"
    assert run.status == expected, f"Expected {expected}, got {run.status}"


def assert_terminal_invariant(store: RunStore):
    """Terminal status <=> end_time and exit_code present, for every run."""
    for run in store.list_runs():
        has_result = run.end_time is not None and run.exit_code is not None
        assert run.is_terminal() == has_result, (
            f"Run {run.run_id} status={run.status.value} "
            f"end_time={run.end_time} exit_code={run.exit_code}"
        )
