"""
Dispatcher for the Job Engine.

- Decides which eligible runs may start, bounded by the concurrency limit
- Hands admitted runs to the Executor without waiting for them
- Re-evaluates on every store change and on a periodic tick (scheduled runs
  become due with the passage of time, which no event signals)

What Dispatcher MUST NOT do:
- Execute the job itself
- Reorder by scheduled time (admission is strictly in submission order)
- Retry failed runs
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from .entities import utc_now
from .errors import EngineError
from .executor import Executor
from .run_store import RunStore


logger = logging.getLogger(__name__)


class DispatcherState(str, Enum):
    """Dispatcher lifecycle states."""

    STOPPED = "STOPPED"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"


class Dispatcher:
    """
    Admits eligible runs and dispatches them to the executor.

    Key behaviors:
    1. Count RUNNING runs; free slots = limit - running
    2. Collect PENDING runs and due SCHEDULED runs, oldest submission first
    3. Start up to free-slots of them (runs whose job is missing are skipped
       and stay eligible)
    4. Loop on notify() or every poll_interval seconds
    """

    def __init__(
        self,
        store: RunStore,
        executor: Executor,
        concurrency_limit: int,
        poll_interval: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize Dispatcher.

        Args:
            store: RunStore with jobs and runs
            executor: Executor that drives admitted runs
            concurrency_limit: Maximum simultaneously RUNNING runs (>= 1)
            poll_interval: Seconds between passes when nothing changes
            clock: Source of the current time (injectable for testing)
        """
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")

        self.store = store
        self.executor = executor
        self.concurrency_limit = concurrency_limit
        self.poll_interval = poll_interval
        self.clock = clock

        self._state = DispatcherState.STOPPED
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wake: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> DispatcherState:
        """Get current dispatcher state."""
        return self._state

    def is_running(self) -> bool:
        """Check if the dispatch loop is active."""
        return self._state == DispatcherState.RUNNING

    # =========================================================================
    # Single Dispatch Pass
    # =========================================================================

    def dispatch_once(self) -> list[str]:
        """
        Run one admission pass.

        Must be called from within the event loop (executions are started as
        tasks on it).

        Returns:
            IDs of the runs admitted in this pass
        """
        available = self.concurrency_limit - self.store.running_count()
        if available <= 0:
            logger.debug("No free slots, skipping dispatch")
            return []

        admitted: list[str] = []
        for run in self.store.eligible_runs(self.clock()):
            if len(admitted) >= available:
                break

            job = self.store.get_job(run.job_id)
            if job is None:
                logger.debug(f"Run {run.run_id}: job {run.job_id} not found, skipping")
                continue

            try:
                self.executor.start(job, run)
            except EngineError as e:
                # Run changed under us (e.g. already started); leave it alone
                logger.warning(f"Run {run.run_id} could not be started: {e}")
                continue

            admitted.append(run.run_id)

        if admitted:
            logger.info(
                f"Dispatched {len(admitted)} run(s): {', '.join(admitted)} "
                f"(limit={self.concurrency_limit})"
            )
        return admitted

    # =========================================================================
    # Dispatch Loop
    # =========================================================================

    def notify(self) -> None:
        """
        Request an immediate dispatch pass.

        Safe to call from any thread. No-op while the loop is not running.
        """
        if self._loop is None or self._wake is None or self._loop.is_closed():
            return

        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None

        if current is self._loop:
            self._wake.set()
        else:
            self._loop.call_soon_threadsafe(self._wake.set)

    async def start(self) -> None:
        """Start the dispatch loop as a background task on the running loop."""
        if self._state != DispatcherState.STOPPED:
            raise RuntimeError(f"Cannot start dispatcher in {self._state.value} state")

        self._loop = asyncio.get_running_loop()
        self._wake = asyncio.Event()
        self._state = DispatcherState.RUNNING
        self._task = self._loop.create_task(self._dispatch_loop(), name="dispatcher")

    async def stop(self, timeout: float = 30.0) -> None:
        """
        Stop the dispatch loop gracefully.

        In-flight runs are allowed to finish (no preemption) for up to timeout
        seconds. Runs still in flight afterwards are left RUNNING and will be
        reconciled as KILLED on the next startup.
        """
        if self._state == DispatcherState.STOPPED:
            return

        logger.info("Stopping dispatcher...")
        self._state = DispatcherState.STOPPING
        if self._wake is not None:
            self._wake.set()

        if self._task is not None:
            await self._task
            self._task = None

        if not await self.wait_idle(timeout=timeout):
            logger.warning(
                f"{self.executor.in_flight} run(s) still in flight after {timeout}s"
            )

        self._state = DispatcherState.STOPPED
        self._loop = None
        self._wake = None
        logger.info("Dispatcher stopped")

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait until no admitted run is still executing."""
        return await self.executor.wait_idle(timeout=timeout)

    async def _dispatch_loop(self) -> None:
        """Main dispatch loop."""
        logger.info(
            f"Dispatcher loop started (limit={self.concurrency_limit}, "
            f"poll_interval={self.poll_interval}s)"
        )

        while self._state == DispatcherState.RUNNING:
            self._wake.clear()
            try:
                self.dispatch_once()
            except Exception as e:
                logger.error(f"Error in dispatch loop: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Dispatcher loop ended")
