"""
Admission for the Job Engine.

Validates submissions and creates the Job together with its single JobRun.
Rejected submissions raise ValidationError and create nothing.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from .entities import (
    ExecutionKind,
    Job,
    JobRun,
    RunStatus,
    truncate_to_millis,
    utc_now,
)
from .errors import ValidationError
from .run_store import RunStore


logger = logging.getLogger(__name__)


def _coerce_kind(execution_kind: Union[ExecutionKind, str]) -> ExecutionKind:
    if isinstance(execution_kind, ExecutionKind):
        return execution_kind
    try:
        return ExecutionKind(str(execution_kind).strip().upper())
    except ValueError:
        raise ValidationError(
            f"Unknown execution type: {execution_kind!r}", field="execution_kind"
        ) from None


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return truncate_to_millis(value)


class AdmissionService:
    """Accepts new job submissions."""

    def __init__(
        self,
        store: RunStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.clock = clock

    def submit(
        self,
        job_name: str,
        command: str,
        args: str = "",
        execution_kind: Union[ExecutionKind, str] = ExecutionKind.IMMEDIATE,
        scheduled_time: Optional[datetime] = None,
    ) -> tuple[Job, JobRun]:
        """
        Submit a job for immediate or scheduled execution.

        Args:
            job_name: Display name (non-empty)
            command: Command to execute (non-empty)
            args: Argument string
            execution_kind: IMMEDIATE or SCHEDULED
            scheduled_time: Required for SCHEDULED, must be in the future.
                Ignored for IMMEDIATE.

        Returns:
            (job, run) as stored. The run is SCHEDULED if its time is still
            in the future, otherwise PENDING.

        Raises:
            ValidationError: If the submission is rejected
        """
        job_name = (job_name or "").strip()
        command = (command or "").strip()
        args = args or ""
        kind = _coerce_kind(execution_kind)

        if not job_name:
            raise ValidationError("Job name is required.", field="job_name")
        if not command:
            raise ValidationError("Command is required.", field="command")

        now = self.clock()
        if kind == ExecutionKind.IMMEDIATE:
            scheduled_time = None
        elif scheduled_time is not None:
            scheduled_time = _as_utc(scheduled_time)

        if kind == ExecutionKind.SCHEDULED:
            if scheduled_time is None:
                raise ValidationError(
                    "Please select a valid scheduled time.", field="scheduled_time"
                )
            if scheduled_time <= now:
                raise ValidationError(
                    "Scheduled time cannot be in the past.", field="scheduled_time"
                )

        job = Job.create(
            name=job_name,
            command=command,
            args=args,
            execution_kind=kind,
            scheduled_time=scheduled_time,
            created_at=now,
        )

        # Re-check against the clock at creation; a time that has just passed
        # is treated as immediately runnable.
        created = self.clock()
        is_future = (
            kind == ExecutionKind.SCHEDULED
            and scheduled_time is not None
            and scheduled_time > created
        )
        run = JobRun.create(
            job_id=job.job_id,
            status=RunStatus.SCHEDULED if is_future else RunStatus.PENDING,
            start_time=scheduled_time or created,
            created_at=created,
        )

        job, run = self.store.add(job, run)
        logger.info(
            f"Admitted job {job.job_id} '{job.name}' ({kind.value}) "
            f"as run {run.run_id} [{run.status.value}]"
        )
        return job, run
