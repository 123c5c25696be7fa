"""
Run Store for the Job Engine.

In-memory authoritative collection of Jobs and JobRuns.

- Single source of truth for the lifetime of the process
- Every mutation goes through add() / update_run() / replace_runs() under one
  lock, and is followed by a full overwrite of the persisted copy. If that
  write fails the in-memory change is rolled back and the error propagates
- Listeners registered with subscribe() are called after each mutation
  (the Dispatcher uses this to re-evaluate on every state change)

Readers receive copies; mutating a returned JobRun has no effect on the store.
"""

import dataclasses
import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from .entities import (
    ALLOWED_TRANSITIONS,
    Job,
    JobRun,
    RunStatus,
)
from .errors import (
    InvalidTransitionError,
    JobNotFoundError,
    JobRunNotFoundError,
    RunInvariantError,
)
from .persistence import PersistenceAdapter


logger = logging.getLogger(__name__)


def _check_run_invariants(run: JobRun) -> None:
    """end_time and exit_code are present if and only if the status is terminal."""
    if run.is_terminal():
        if run.end_time is None or run.exit_code is None:
            raise RunInvariantError(
                f"Run {run.run_id} is {run.status.value} but is missing end_time/exit_code"
            )
    elif run.end_time is not None or run.exit_code is not None:
        raise RunInvariantError(
            f"Run {run.run_id} is {run.status.value} but has end_time/exit_code set"
        )


class RunStore:
    """
    Owns the job and run collections.

    Runs are kept in submission order; JobRun.sequence records that order and
    survives persistence.
    """

    def __init__(self, persistence: PersistenceAdapter):
        self.persistence = persistence

        self._lock = threading.RLock()
        self._jobs: dict[str, Job] = {}
        self._runs: dict[str, JobRun] = {}
        self._next_sequence = 1
        self._listeners: list[Callable[[], None]] = []

    # =========================================================================
    # Loading / Persisting
    # =========================================================================

    def load(self) -> None:
        """
        Seed the store from the persistence adapter.

        Unreadable persisted state yields empty collections.
        """
        jobs = self.persistence.load_jobs()
        runs = self.persistence.load_runs()

        with self._lock:
            self._jobs = {job.job_id: job for job in jobs}

            # Records written without a sequence keep their stored order
            ordered = sorted(
                enumerate(runs),
                key=lambda pair: (pair[1].sequence or 0, pair[0]),
            )
            self._runs = {}
            self._next_sequence = 1
            for _, run in ordered:
                if not run.sequence:
                    run.sequence = self._next_sequence
                self._next_sequence = max(self._next_sequence, run.sequence + 1)
                self._runs[run.run_id] = run

        logger.info(f"Loaded {len(jobs)} jobs and {len(runs)} runs from {self.persistence.db_path}")

    def _persist_jobs(self) -> None:
        self.persistence.save_jobs(list(self._jobs.values()))

    def _persist_runs(self) -> None:
        self.persistence.save_runs(list(self._runs.values()))

    # =========================================================================
    # Change Notification
    # =========================================================================

    def subscribe(self, listener: Callable[[], None]) -> None:
        """Register a callback invoked after every mutation."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Error in run store listener: {e}", exc_info=True)

    # =========================================================================
    # Mutations
    # =========================================================================

    def add(self, job: Job, run: JobRun) -> tuple[Job, JobRun]:
        """
        Insert a new job together with its initial run.

        Returns:
            (job, run copy with its assigned sequence)
        """
        if run.job_id != job.job_id:
            raise RunInvariantError(
                f"Run {run.run_id} references {run.job_id}, expected {job.job_id}"
            )
        _check_run_invariants(run)

        with self._lock:
            if job.job_id in self._jobs or run.run_id in self._runs:
                raise RunInvariantError(f"Duplicate job/run id: {job.job_id}/{run.run_id}")

            stored = dataclasses.replace(run, sequence=self._next_sequence)
            self._next_sequence += 1

            self._jobs[job.job_id] = job
            self._runs[stored.run_id] = stored
            try:
                self._persist_jobs()
                self._persist_runs()
            except Exception:
                del self._jobs[job.job_id]
                del self._runs[stored.run_id]
                self._next_sequence -= 1
                raise
            result = dataclasses.replace(stored)

        self._notify()
        return job, result

    def update_run(self, run_id: str, fn: Callable[[JobRun], JobRun]) -> JobRun:
        """
        Atomically read-modify-write one run.

        Args:
            run_id: Run to update
            fn: Receives a copy of the current run, returns the updated run

        Returns:
            Copy of the stored run after the update

        Raises:
            JobRunNotFoundError: If run_id is unknown
            InvalidTransitionError: If the status change is not allowed
            RunInvariantError: If the updated run is inconsistent
        """
        with self._lock:
            current = self._runs.get(run_id)
            if current is None:
                raise JobRunNotFoundError(run_id)

            updated = fn(dataclasses.replace(current))

            if updated.run_id != current.run_id or updated.job_id != current.job_id:
                raise RunInvariantError(f"Run {run_id}: run_id/job_id are immutable")
            if updated.status != current.status and (
                updated.status not in ALLOWED_TRANSITIONS[current.status]
            ):
                raise InvalidTransitionError(
                    run_id, current.status.value, updated.status.value
                )
            if current.is_terminal() and updated != current:
                raise InvalidTransitionError(
                    run_id, current.status.value, updated.status.value
                )
            _check_run_invariants(updated)

            updated.sequence = current.sequence
            updated.created_at = current.created_at
            self._runs[run_id] = updated
            try:
                self._persist_runs()
            except Exception:
                self._runs[run_id] = current
                raise
            result = dataclasses.replace(updated)

        self._notify()
        return result

    def replace_runs(self, runs: list[JobRun]) -> None:
        """
        Replace the whole run collection (used by the startup reconciler).

        Submission order is preserved by each run's sequence.
        """
        for run in runs:
            _check_run_invariants(run)

        with self._lock:
            previous = (self._runs, self._next_sequence)
            self._runs = {
                run.run_id: dataclasses.replace(run)
                for run in sorted(runs, key=lambda r: r.sequence)
            }
            if self._runs:
                self._next_sequence = max(r.sequence for r in self._runs.values()) + 1
            try:
                self._persist_runs()
            except Exception:
                self._runs, self._next_sequence = previous
                raise

        self._notify()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def require_job(self, job_id: str) -> Job:
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def get_run(self, run_id: str) -> Optional[JobRun]:
        with self._lock:
            run = self._runs.get(run_id)
            return dataclasses.replace(run) if run else None

    def require_run(self, run_id: str) -> JobRun:
        run = self.get_run(run_id)
        if run is None:
            raise JobRunNotFoundError(run_id)
        return run

    def list_jobs(self) -> list[Job]:
        with self._lock:
            return list(self._jobs.values())

    def list_runs(self, newest_first: bool = False) -> list[JobRun]:
        """All runs in submission order (or reversed)."""
        with self._lock:
            runs = [dataclasses.replace(r) for r in self._runs.values()]
        runs.sort(key=lambda r: r.sequence, reverse=newest_first)
        return runs

    def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in RunStatus}
        with self._lock:
            for run in self._runs.values():
                counts[run.status.value] += 1
        return counts

    def running_count(self) -> int:
        with self._lock:
            return sum(1 for r in self._runs.values() if r.status == RunStatus.RUNNING)

    def eligible_runs(self, now: datetime) -> list[JobRun]:
        """PENDING runs and due SCHEDULED runs, oldest submission first."""
        return [run for run in self.list_runs() if run.is_eligible(now)]
