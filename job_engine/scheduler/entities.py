"""
Engine Domain Entities.

- Job: Immutable definition of a command to execute
- JobRun: Mutable record of the single execution attempt of a Job
- CommandResult: Output returned by an execution collaborator

Timestamps are UTC-aware datetimes truncated to millisecond precision so that
they survive the ISO-8601 interchange format unchanged.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
import uuid


class ExecutionKind(str, Enum):
    """How a job asks to be started."""

    IMMEDIATE = "IMMEDIATE"
    SCHEDULED = "SCHEDULED"


class RunStatus(str, Enum):
    """
    JobRun lifecycle states.

    SCHEDULED -> PENDING -> RUNNING -> {SUCCESS, FAILED, TIMEOUT, KILLED}
    """

    SCHEDULED = "SCHEDULED"
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"
    KILLED = "KILLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {RunStatus.SUCCESS, RunStatus.FAILED, RunStatus.TIMEOUT, RunStatus.KILLED}
)

# Transitions the run store accepts. Anything else raises InvalidTransitionError.
ALLOWED_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.SCHEDULED: frozenset({RunStatus.PENDING, RunStatus.RUNNING, RunStatus.FAILED}),
    RunStatus.PENDING: frozenset({RunStatus.RUNNING, RunStatus.KILLED}),
    RunStatus.RUNNING: frozenset(
        {RunStatus.SUCCESS, RunStatus.FAILED, RunStatus.TIMEOUT, RunStatus.KILLED}
    ),
    RunStatus.SUCCESS: frozenset(),
    RunStatus.FAILED: frozenset(),
    RunStatus.TIMEOUT: frozenset(),
    RunStatus.KILLED: frozenset(),
}


def generate_id(prefix: str) -> str:
    """Generate a new prefixed identifier, e.g. 'job-3f2a...'."""
    return f"{prefix}-{uuid.uuid4().hex}"


def truncate_to_millis(value: datetime) -> datetime:
    """Drop sub-millisecond precision and normalize to UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def utc_now() -> datetime:
    """Current time as a millisecond-precision UTC datetime."""
    return truncate_to_millis(datetime.now(timezone.utc))


def to_iso(value: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with milliseconds, e.g. 2026-01-01T00:00:00.000Z."""
    value = truncate_to_millis(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def from_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp written by to_iso() (or any offset form)."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return truncate_to_millis(datetime.fromisoformat(value))


@dataclass(frozen=True)
class CommandResult:
    """Output of one collaborator call."""

    stdout: str
    stderr: str
    exit_code: int


@dataclass(frozen=True)
class Job:
    """
    Immutable definition of a command to execute.

    Created once at admission; never mutated or deleted.
    """

    job_id: str
    name: str
    command: str
    args: str
    execution_kind: ExecutionKind
    scheduled_time: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def create(
        cls,
        name: str,
        command: str,
        args: str,
        execution_kind: ExecutionKind,
        scheduled_time: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
    ) -> "Job":
        """Create a new Job with generated ID."""
        return cls(
            job_id=generate_id("job"),
            name=name,
            command=command,
            args=args,
            execution_kind=execution_kind,
            scheduled_time=truncate_to_millis(scheduled_time) if scheduled_time else None,
            created_at=created_at or utc_now(),
        )

    @property
    def command_line(self) -> str:
        return f"{self.command} {self.args}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.job_id,
            "name": self.name,
            "command": self.command,
            "args": self.args,
            "executionType": self.execution_kind.value,
            "scheduledTime": to_iso(self.scheduled_time) if self.scheduled_time else None,
            "createdAt": to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        scheduled = data.get("scheduledTime")
        created = data.get("createdAt")
        return cls(
            job_id=data["id"],
            name=data["name"],
            command=data["command"],
            args=data.get("args") or "",
            execution_kind=ExecutionKind(data["executionType"]),
            scheduled_time=from_iso(scheduled) if scheduled else None,
            created_at=from_iso(created) if created else utc_now(),
        )


@dataclass
class JobRun:
    """
    Record of the single execution attempt of a Job.

    Mutability rules:
    - run_id, job_id, created_at, sequence: Immutable
    - status: Moves forward only (see ALLOWED_TRANSITIONS)
    - end_time, exit_code: Set if and only if status is terminal
    """

    run_id: str
    job_id: str
    status: RunStatus
    start_time: datetime
    end_time: Optional[datetime] = None
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    exit_code: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)
    sequence: int = 0

    @classmethod
    def create(
        cls,
        job_id: str,
        status: RunStatus,
        start_time: datetime,
        created_at: Optional[datetime] = None,
    ) -> "JobRun":
        """Create a new JobRun with generated ID."""
        return cls(
            run_id=generate_id("run"),
            job_id=job_id,
            status=status,
            start_time=truncate_to_millis(start_time),
            created_at=created_at or utc_now(),
        )

    def is_terminal(self) -> bool:
        """Check if run has a terminal status."""
        return self.status.is_terminal

    def is_due(self, now: datetime) -> bool:
        """A SCHEDULED run whose start time has arrived."""
        return self.status == RunStatus.SCHEDULED and self.start_time <= now

    def is_eligible(self, now: datetime) -> bool:
        """Whether the dispatcher may admit this run."""
        return self.status == RunStatus.PENDING or self.is_due(now)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "id": self.run_id,
            "jobId": self.job_id,
            "status": self.status.value,
            "startTime": to_iso(self.start_time),
            "endTime": to_iso(self.end_time) if self.end_time else None,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exitCode": self.exit_code,
            "createdAt": to_iso(self.created_at),
            "sequence": self.sequence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "JobRun":
        end = data.get("endTime")
        created = data.get("createdAt")
        start_time = from_iso(data["startTime"])
        return cls(
            run_id=data["id"],
            job_id=data["jobId"],
            status=RunStatus(data["status"]),
            start_time=start_time,
            end_time=from_iso(end) if end else None,
            stdout=data.get("stdout"),
            stderr=data.get("stderr"),
            exit_code=data.get("exitCode"),
            created_at=from_iso(created) if created else start_time,
            sequence=int(data.get("sequence", 0)),
        )
