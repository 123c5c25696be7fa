"""
Jobs router.

Endpoints under /jobs/* for submitting jobs and reading run history.
Routes under /jobs/runs are declared before /jobs/{job_id} so they are not
shadowed by it.
"""

from fastapi import APIRouter, HTTPException, Query, status

from ...scheduler import JobNotFoundError, JobRunNotFoundError, ValidationError
from ..schemas.jobs import (
    JobResponse,
    JobRunListResponse,
    JobRunResponse,
    JobSubmitRequest,
    JobSubmitResponse,
    RunLogResponse,
)
from .._engine_state import get_engine_service


router = APIRouter()


@router.post("", response_model=JobSubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_job(request: JobSubmitRequest):
    """
    Submit a job for immediate or scheduled execution.

    Creates the job and its single run. IMMEDIATE jobs (and SCHEDULED jobs
    whose time has just passed) start PENDING; future SCHEDULED jobs start
    SCHEDULED.
    """
    service = get_engine_service()

    try:
        job, run = service.submit(
            job_name=request.job_name,
            command=request.command,
            args=request.args,
            execution_kind=request.execution_type,
            scheduled_time=request.scheduled_time,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=str(e),
        )

    return JobSubmitResponse(
        job=JobResponse.from_job(job),
        run=JobRunResponse.from_run(run, job),
    )


@router.get("/runs", response_model=JobRunListResponse)
async def list_runs(limit: int = Query(default=100, ge=1, le=1000)):
    """List runs, newest submission first."""
    service = get_engine_service()

    runs = service.list_runs()
    page = [
        JobRunResponse.from_run(run, service.store.get_job(run.job_id))
        for run in runs[:limit]
    ]
    return JobRunListResponse(runs=page, total=len(runs))


@router.get("/runs/{run_id}", response_model=JobRunResponse)
async def get_run(run_id: str):
    """Get a single run."""
    service = get_engine_service()

    try:
        run = service.get_run(run_id)
    except JobRunNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return JobRunResponse.from_run(run, service.store.get_job(run.job_id))


@router.get("/runs/{run_id}/log", response_model=RunLogResponse)
async def view_log(run_id: str):
    """Get stdout, stderr and exit code of a run."""
    service = get_engine_service()

    try:
        log = service.view_log(run_id)
    except JobRunNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return RunLogResponse.from_log(log)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str):
    """Get a job definition."""
    service = get_engine_service()

    try:
        job = service.get_job(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return JobResponse.from_job(job)
