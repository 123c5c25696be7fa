"""
Job API schemas.

Pydantic models for job submission and the read-only run projections.
Timestamps are ISO-8601 UTC strings with millisecond precision.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ...scheduler import Job, JobRun, RunLog
from ...scheduler.entities import to_iso


# =============================================================================
# Submission
# =============================================================================


class JobSubmitRequest(BaseModel):
    """Request to submit a new job."""

    job_name: str = Field(
        ...,
        min_length=1,
        description="Display name of the job",
        json_schema_extra={"examples": ["My Test Job"]},
    )
    command: str = Field(
        ...,
        min_length=1,
        description="Command / path to execute",
        json_schema_extra={"examples": ["echo"]},
    )
    args: str = Field(
        default="",
        description="Argument string",
        json_schema_extra={"examples": ["hello world from a queued job"]},
    )
    execution_type: Literal["IMMEDIATE", "SCHEDULED"] = Field(
        default="IMMEDIATE",
        description="IMMEDIATE runs as soon as a slot is free; SCHEDULED waits for scheduled_time",
    )
    scheduled_time: Optional[datetime] = Field(
        default=None,
        description="Start time for SCHEDULED jobs (must be in the future; naive values are UTC)",
    )


class JobResponse(BaseModel):
    """Response representing a Job."""

    job_id: str = Field(..., description="Unique job identifier")
    name: str = Field(..., description="Job display name")
    command: str = Field(..., description="Command to execute")
    args: str = Field(default="", description="Argument string")
    execution_type: str = Field(..., description="IMMEDIATE or SCHEDULED")
    scheduled_time: Optional[str] = Field(default=None, description="Scheduled start time")
    created_at: str = Field(..., description="Creation timestamp")

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        return cls(
            job_id=job.job_id,
            name=job.name,
            command=job.command,
            args=job.args,
            execution_type=job.execution_kind.value,
            scheduled_time=to_iso(job.scheduled_time) if job.scheduled_time else None,
            created_at=to_iso(job.created_at),
        )


class JobRunResponse(BaseModel):
    """Response representing a JobRun."""

    run_id: str = Field(..., description="Unique run identifier")
    job_id: str = Field(..., description="Owning job ID")
    job_name: Optional[str] = Field(default=None, description="Owning job name")
    status: str = Field(
        ...,
        description="SCHEDULED/PENDING/RUNNING/SUCCESS/FAILED/TIMEOUT/KILLED",
    )
    start_time: str = Field(..., description="Scheduled or submission time")
    end_time: Optional[str] = Field(default=None, description="Terminal timestamp")
    exit_code: Optional[int] = Field(default=None, description="Exit code once terminal")
    duration_seconds: Optional[float] = Field(default=None, description="end_time - start_time")

    @classmethod
    def from_run(cls, run: JobRun, job: Optional[Job] = None) -> "JobRunResponse":
        return cls(
            run_id=run.run_id,
            job_id=run.job_id,
            job_name=job.name if job else None,
            status=run.status.value,
            start_time=to_iso(run.start_time),
            end_time=to_iso(run.end_time) if run.end_time else None,
            exit_code=run.exit_code,
            duration_seconds=run.duration_seconds,
        )


class JobSubmitResponse(BaseModel):
    """Response from job submission."""

    job: JobResponse
    run: JobRunResponse
    message: str = Field(default="Job submitted successfully")


class JobRunListResponse(BaseModel):
    """Response for the run list endpoint (newest first)."""

    runs: List[JobRunResponse] = Field(default_factory=list)
    total: int = Field(..., description="Total number of runs")


class RunLogResponse(BaseModel):
    """Output of a single run."""

    run: JobRunResponse
    command_line: Optional[str] = Field(default=None, description="Command and arguments")
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    exit_code: Optional[int] = None

    @classmethod
    def from_log(cls, log: RunLog) -> "RunLogResponse":
        return cls(
            run=JobRunResponse.from_run(log.run, log.job),
            command_line=log.job.command_line if log.job else None,
            stdout=log.stdout,
            stderr=log.stderr,
            exit_code=log.exit_code,
        )
