"""
Engine Service - Main entry point for the Job Engine.

This service wires all components together:
- PersistenceAdapter (storage)
- RunStore (authoritative in-memory state)
- AdmissionService (submissions)
- Dispatcher (admission loop)
- Executor (timeout-bounded execution)
- Reconciler (startup repair)

Usage:
    service = EngineService.create(EngineConfig.from_env())
    await service.start()
    job, run = service.submit("t1", "echo", "hi")
    ...
    await service.stop()
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union

from ..config import EngineConfig
from .admission import AdmissionService
from .dispatcher import Dispatcher
from .entities import ExecutionKind, Job, JobRun, utc_now
from .executor import Executor
from .persistence import PersistenceAdapter
from .recovery import Reconciler
from .run_store import RunStore
from .runners import CommandRunner, build_runner


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunLog:
    """Read-only view of one run's output."""

    run: JobRun
    job: Optional[Job]

    @property
    def stdout(self) -> Optional[str]:
        return self.run.stdout

    @property
    def stderr(self) -> Optional[str]:
        return self.run.stderr

    @property
    def exit_code(self) -> Optional[int]:
        return self.run.exit_code

    @property
    def duration_seconds(self) -> Optional[float]:
        return self.run.duration_seconds


class EngineService:
    """
    Coordinates all engine components.

    Provides:
    - Component initialization and wiring
    - Startup with reconciliation
    - Graceful shutdown
    - API-friendly methods for submissions and read-only projections
    """

    def __init__(
        self,
        config: EngineConfig,
        persistence: PersistenceAdapter,
        store: RunStore,
        admission: AdmissionService,
        dispatcher: Dispatcher,
        executor: Executor,
        reconciler: Reconciler,
    ):
        """
        Initialize EngineService with all components.

        Use EngineService.create() for convenient construction.
        """
        self.config = config
        self.persistence = persistence
        self.store = store
        self.admission = admission
        self.dispatcher = dispatcher
        self.executor = executor
        self.reconciler = reconciler

        self._started = False

    @classmethod
    def create(
        cls,
        config: EngineConfig,
        runner: Optional[CommandRunner] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "EngineService":
        """
        Create an EngineService with all components wired together.

        The run store is seeded from persistence immediately; reconciliation
        happens in start().

        Args:
            config: Engine configuration
            runner: Execution collaborator (defaults to config.runner)
            clock: Source of the current time

        Returns:
            Configured EngineService
        """
        persistence = PersistenceAdapter(config.db_path)

        store = RunStore(persistence)
        store.load()

        executor = Executor(
            store=store,
            runner=runner or build_runner(config.runner),
            timeout_seconds=config.timeout_seconds,
            clock=clock,
        )
        dispatcher = Dispatcher(
            store=store,
            executor=executor,
            concurrency_limit=config.max_concurrent_jobs,
            poll_interval=config.poll_interval,
            clock=clock,
        )

        # Every state change triggers a dispatch pass
        store.subscribe(dispatcher.notify)

        return cls(
            config=config,
            persistence=persistence,
            store=store,
            admission=AdmissionService(store, clock=clock),
            dispatcher=dispatcher,
            executor=executor,
            reconciler=Reconciler(store, clock=clock),
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, run_reconcile: bool = True) -> dict:
        """
        Start the engine.

        Args:
            run_reconcile: Whether to reconcile persisted runs first

        Returns:
            Reconciliation statistics if reconciliation was run
        """
        if self._started:
            raise RuntimeError("Engine already started")

        logger.info("Starting job engine...")

        stats = {}
        if run_reconcile:
            stats = self.reconciler.reconcile()

        await self.dispatcher.start()
        self._started = True

        logger.info("Job engine started")
        return stats

    async def stop(self, timeout: float = 30.0) -> None:
        """
        Stop the engine gracefully.

        Args:
            timeout: Maximum wait for in-flight runs
        """
        if not self._started:
            return

        logger.info("Stopping job engine...")
        await self.dispatcher.stop(timeout=timeout)
        cancelled = self.executor.cancel_abandoned()
        if cancelled:
            logger.info(f"Cancelled {cancelled} abandoned collaborator call(s)")
        self._started = False
        logger.info("Job engine stopped")

    @property
    def is_running(self) -> bool:
        """Check if the engine is running."""
        return self._started and self.dispatcher.is_running()

    # =========================================================================
    # Submissions
    # =========================================================================

    def submit(
        self,
        job_name: str,
        command: str,
        args: str = "",
        execution_kind: Union[ExecutionKind, str] = ExecutionKind.IMMEDIATE,
        scheduled_time: Optional[datetime] = None,
    ) -> tuple[Job, JobRun]:
        """Submit a job. See AdmissionService.submit()."""
        return self.admission.submit(
            job_name=job_name,
            command=command,
            args=args,
            execution_kind=execution_kind,
            scheduled_time=scheduled_time,
        )

    # =========================================================================
    # Read-only Projections
    # =========================================================================

    def list_runs(self, limit: Optional[int] = None) -> list[JobRun]:
        """List runs, newest submission first."""
        runs = self.store.list_runs(newest_first=True)
        return runs[:limit] if limit is not None else runs

    def view_log(self, run_id: str) -> RunLog:
        """
        Get the output of a run.

        Raises:
            JobRunNotFoundError: If run_id is unknown
        """
        run = self.store.require_run(run_id)
        return RunLog(run=run, job=self.store.get_job(run.job_id))

    def get_run(self, run_id: str) -> JobRun:
        return self.store.require_run(run_id)

    def get_job(self, job_id: str) -> Job:
        return self.store.require_job(job_id)

    def get_status(self) -> dict:
        """
        Get engine status.

        Returns:
            Dict with dispatcher state, counts and limits
        """
        counts = self.store.count_by_status()
        return {
            "dispatcher_state": self.dispatcher.state.value,
            "is_running": self.is_running,
            "running_count": counts["RUNNING"],
            "eligible_count": len(self.store.eligible_runs(self.dispatcher.clock())),
            "concurrency_limit": self.config.max_concurrent_jobs,
            "timeout_ms": self.config.timeout_ms,
            "status_counts": counts,
        }
