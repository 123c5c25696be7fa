"""
Shared test doubles.

- MockClock: deterministic, manually advanced UTC clock
- FakeCommandRunner: controllable execution collaborator
- wait_until: poll an async condition with a deadline
- wait_for_run_status: poll a run through the HTTP API
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from job_engine.scheduler.entities import CommandResult


FIXED_DATETIME = datetime(2026, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


class MockClock:
    """
    Mock clock for deterministic time control.

    - Starts at a fixed UTC instant
    - Advances only when explicitly ticked
    """

    def __init__(self, start_time: datetime = FIXED_DATETIME):
        self._current = start_time

    def __call__(self) -> datetime:
        return self._current

    def now(self) -> datetime:
        return self._current

    def tick(self, seconds: float = 1) -> None:
        """Advance time by specified seconds."""
        self._current += timedelta(seconds=seconds)

    def set(self, time: datetime) -> None:
        """Set time to specific value."""
        self._current = time


class FakeCommandRunner:
    """
    Execution collaborator for tests.

    By default echoes args back on stdout with exit code 0. Outcomes can be
    configured per command; blocked commands wait until released.
    """

    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.completed: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0
        self._outcomes: dict[str, tuple[Union[CommandResult, Exception], float]] = {}
        self._blocked: set[str] = set()
        self._gates: dict[str, asyncio.Event] = {}

    def set_result(self, command: str, result: CommandResult, delay: float = 0.0) -> None:
        self._outcomes[command] = (result, delay)

    def set_error(self, command: str, error: Exception, delay: float = 0.0) -> None:
        self._outcomes[command] = (error, delay)

    def block(self, command: str) -> None:
        """Calls for command wait until release(command)."""
        self._blocked.add(command)

    def release(self, command: str) -> None:
        self._blocked.discard(command)
        gate = self._gates.get(command)
        if gate is not None:
            gate.set()

    async def run(self, command: str, args: str) -> CommandResult:
        self.calls.append((command, args))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if command in self._blocked:
                gate = self._gates.setdefault(command, asyncio.Event())
                await gate.wait()

            outcome, delay = self._outcomes.get(
                command, (CommandResult(stdout=args, stderr="", exit_code=0), 0.0)
            )
            if delay:
                await asyncio.sleep(delay)

            self.completed.append((command, args))
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.active -= 1


async def wait_until(
    condition: Callable[[], bool],
    timeout: float = 2.0,
    interval: float = 0.01,
    message: Optional[str] = None,
) -> None:
    """Poll condition until it is true; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() >= deadline:
            raise AssertionError(message or "Condition not met before timeout")
        await asyncio.sleep(interval)


def wait_for_run_status(client, run_id: str, expected: str, timeout: float = 3.0) -> dict:
    """Poll GET /jobs/runs/{run_id} from a synchronous test client."""
    deadline = time.monotonic() + timeout
    while True:
        data = client.get(f"/jobs/runs/{run_id}").json()
        if data["status"] == expected:
            return data
        if time.monotonic() >= deadline:
            raise AssertionError(f"Run {run_id} is {data['status']}, expected {expected}")
        time.sleep(0.02)
