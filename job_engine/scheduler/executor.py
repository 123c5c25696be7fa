"""
Executor for the Job Engine.

Drives one run from admission to a terminal state:
1. Transition the run to RUNNING (persisted before the collaborator is called)
2. Race the collaborator call against the execution timeout
3. Record the outcome of whichever finishes first

What Executor MUST NOT do:
- Retry a run (one attempt per run)
- Let a late collaborator result overwrite a terminal record
- Block the Dispatcher (start() returns immediately)
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from .entities import (
    CommandResult,
    Job,
    JobRun,
    RunStatus,
    utc_now,
)
from .run_store import RunStore
from .runners import CommandRunner


logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = -1
FAILURE_EXIT_CODE = 1


class Executor:
    """
    Executes runs through a CommandRunner with a timeout.

    Each run is resolved exactly once: the first of {collaborator result,
    timeout} to arrive claims the run in _resolved, and every later
    resolution attempt for the same run is dropped.
    """

    def __init__(
        self,
        store: RunStore,
        runner: CommandRunner,
        timeout_seconds: float,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize Executor.

        Args:
            store: RunStore holding the runs
            runner: Execution collaborator
            timeout_seconds: Maximum wait for the collaborator per run
            clock: Source of the current time (injectable for testing)
        """
        self.store = store
        self.runner = runner
        self.timeout_seconds = timeout_seconds
        self.clock = clock

        self._resolved: set[str] = set()
        self._resolve_lock = threading.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._abandoned: set[asyncio.Future] = set()

    @property
    def in_flight(self) -> int:
        """Number of runs currently being driven by this executor."""
        return len(self._tasks)

    # =========================================================================
    # Entry Points
    # =========================================================================

    def start(self, job: Job, run: JobRun) -> asyncio.Task:
        """
        Mark the run RUNNING and continue execution in the background.

        Must be called from within the event loop. The RUNNING transition is
        applied before returning so that the next running-count reflects it.
        """
        running = self._mark_running(run.run_id)
        task = asyncio.get_running_loop().create_task(
            self._drive(job, running),
            name=f"execute-{run.run_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def execute(self, job: Job, run: JobRun) -> JobRun:
        """
        Execute a run to completion and return its terminal record.

        Args:
            job: The job definition
            run: The run to execute (PENDING or due SCHEDULED)

        Returns:
            The JobRun in its terminal state
        """
        running = self._mark_running(run.run_id)
        return await self._drive(job, running)

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for all in-flight executions to finish.

        Returns:
            True if nothing is in flight anymore, False on timeout
        """
        if not self._tasks:
            return True
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        return not pending

    def cancel_abandoned(self) -> int:
        """
        Cancel collaborator calls that outlived their timeout.

        Their results would be ignored anyway; this only frees resources.
        """
        count = 0
        for call in list(self._abandoned):
            if not call.done():
                call.cancel()
                count += 1
        self._abandoned.clear()
        return count

    # =========================================================================
    # Execution
    # =========================================================================

    def _mark_running(self, run_id: str) -> JobRun:
        def _to_running(run: JobRun) -> JobRun:
            run.status = RunStatus.RUNNING
            return run

        running = self.store.update_run(run_id, _to_running)
        logger.info(f"Run {run_id} RUNNING (job={running.job_id})")
        return running

    async def _call_runner(self, job: Job) -> CommandResult:
        return await self.runner.run(job.command, job.args)

    async def _drive(self, job: Job, run: JobRun) -> JobRun:
        call = asyncio.ensure_future(self._call_runner(job))
        done, _ = await asyncio.wait({call}, timeout=self.timeout_seconds)

        if call in done:
            self._resolve_from_call(run.run_id, call)
            self._forget(run.run_id)
        else:
            self._abandoned.add(call)
            call.add_done_callback(lambda c: self._on_late_result(run.run_id, c))
            self._resolve(
                run.run_id,
                status=RunStatus.TIMEOUT,
                stdout=None,
                stderr=f"Execution timed out after {int(self.timeout_seconds * 1000)} ms",
                exit_code=TIMEOUT_EXIT_CODE,
            )

        return self.store.require_run(run.run_id)

    def _resolve_from_call(self, run_id: str, call: asyncio.Future) -> bool:
        """Resolve the run from a finished collaborator call."""
        try:
            result = call.result()
        except asyncio.CancelledError:
            return self._resolve(
                run_id,
                status=RunStatus.FAILED,
                stdout=None,
                stderr="Execution was cancelled",
                exit_code=FAILURE_EXIT_CODE,
            )
        except Exception as e:
            logger.warning(f"Run {run_id}: collaborator failed: {e}")
            return self._resolve(
                run_id,
                status=RunStatus.FAILED,
                stdout=None,
                stderr=str(e) or e.__class__.__name__,
                exit_code=FAILURE_EXIT_CODE,
            )

        return self._resolve(
            run_id,
            status=RunStatus.SUCCESS if result.exit_code == 0 else RunStatus.FAILED,
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.exit_code,
        )

    def _on_late_result(self, run_id: str, call: asyncio.Future) -> None:
        self._abandoned.discard(call)
        try:
            if call.cancelled():
                return
            # Retrieve the exception so it is not reported as never retrieved
            if call.exception() is not None:
                logger.debug(f"Run {run_id}: late collaborator failure ignored")
            self._resolve_from_call(run_id, call)
        finally:
            self._forget(run_id)

    def _forget(self, run_id: str) -> None:
        """Drop the resolution marker once no further result can arrive."""
        with self._resolve_lock:
            self._resolved.discard(run_id)

    def _resolve(
        self,
        run_id: str,
        status: RunStatus,
        stdout: Optional[str],
        stderr: Optional[str],
        exit_code: int,
    ) -> bool:
        """
        Write the terminal record unless the run was already resolved.

        Returns:
            True if this call performed the terminal transition
        """
        with self._resolve_lock:
            if run_id in self._resolved:
                logger.info(f"Run {run_id}: discarding late {status.value} result")
                return False
            self._resolved.add(run_id)

        end_time = self.clock()

        def _finish(run: JobRun) -> JobRun:
            run.status = status
            run.stdout = stdout
            run.stderr = stderr
            run.exit_code = exit_code
            run.end_time = end_time
            return run

        try:
            self.store.update_run(run_id, _finish)
        except Exception:
            logger.exception(f"Run {run_id}: could not record {status.value}")
            return False

        logger.info(f"Run {run_id} {status.value} (exit_code={exit_code})")
        return True
