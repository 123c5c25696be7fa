"""
Reconciler for the Job Engine.

Runs once at startup, before the first dispatch pass, and repairs runs left
inconsistent by an unclean shutdown:
- RUNNING / PENDING runs: outcome unknowable, marked KILLED
- SCHEDULED runs whose start time has passed: missed while offline, marked FAILED

Nothing is resumed or started late. Reconciliation is idempotent: running it
twice without time passing changes nothing the second time.
"""

import dataclasses
import logging
from datetime import datetime
from typing import Callable, Optional

from .entities import JobRun, RunStatus, utc_now
from .run_store import RunStore


logger = logging.getLogger(__name__)

RESTART_KILLED_MESSAGE = "Job was terminated due to application restart."
MISSED_SCHEDULE_MESSAGE = (
    "Scheduled execution time was missed while the application was offline."
)

KILLED_EXIT_CODE = -1
MISSED_EXIT_CODE = 1


class Reconciler:
    """
    Startup repair pass over persisted runs.

    The reconciled collection replaces the stored one only if at least one
    run changed, so a clean restart performs no write.
    """

    def __init__(
        self,
        store: RunStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.clock = clock

    def reconcile(self, now: Optional[datetime] = None) -> dict:
        """
        Reconcile all runs against the current time.

        Args:
            now: Reference time (defaults to the clock)

        Returns:
            Statistics: {"killed": n, "missed": n, "unchanged": n}
        """
        now = now or self.clock()
        stats = {"killed": 0, "missed": 0, "unchanged": 0}

        logger.info("Starting startup reconciliation...")

        reconciled: list[JobRun] = []
        for run in self.store.list_runs():
            repaired = self._reconcile_run(run, now)
            if repaired is None:
                stats["unchanged"] += 1
                reconciled.append(run)
                continue

            if repaired.status == RunStatus.KILLED:
                stats["killed"] += 1
            else:
                stats["missed"] += 1
            logger.info(
                f"Run {run.run_id}: {run.status.value} -> {repaired.status.value}"
            )
            reconciled.append(repaired)

        if stats["killed"] or stats["missed"]:
            self.store.replace_runs(reconciled)

        logger.info(
            f"Reconciliation complete: "
            f"{stats['killed']} killed, {stats['missed']} missed schedules, "
            f"{stats['unchanged']} unchanged"
        )
        return stats

    @staticmethod
    def _reconcile_run(run: JobRun, now: datetime) -> Optional[JobRun]:
        """Return the repaired run, or None if it needs no change."""
        if run.status in (RunStatus.RUNNING, RunStatus.PENDING):
            return dataclasses.replace(
                run,
                status=RunStatus.KILLED,
                stderr=RESTART_KILLED_MESSAGE,
                exit_code=KILLED_EXIT_CODE,
                end_time=now,
            )

        if run.status == RunStatus.SCHEDULED and run.start_time < now:
            return dataclasses.replace(
                run,
                status=RunStatus.FAILED,
                stderr=MISSED_SCHEDULE_MESSAGE,
                exit_code=MISSED_EXIT_CODE,
                end_time=now,
            )

        return None
