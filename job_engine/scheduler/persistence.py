"""
Persistence Adapter for the Job Engine.

SQLite-backed key/value storage holding two named records:
- "jobs": JSON list of Job definitions
- "jobRuns": JSON list of JobRun records

The adapter has no authority of its own. The RunStore seeds itself from it on
startup and overwrites both records after every mutation.

Datetimes are stored as ISO-8601 UTC strings with millisecond precision
(2026-01-01T00:00:00.000Z), which round-trip exactly.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from .entities import Job, JobRun, to_iso, utc_now


logger = logging.getLogger(__name__)

JOBS_KEY = "jobs"
RUNS_KEY = "jobRuns"


class PersistenceAdapter:
    """
    SQLite key/value store.

    - Values are JSON text
    - save() replaces the whole value for a key (last writer wins)
    - load() returns None for an unknown key
    - Does NOT contain business logic
    """

    def __init__(self, db_path: str | Path):
        """
        Initialize persistence adapter.

        Args:
            db_path: Path to SQLite database file. Parent directories are created.
        """
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with WAL mode enabled."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        conn = self._get_connection()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

    # =========================================================================
    # Key/Value Operations
    # =========================================================================

    def save(self, key: str, value: Any) -> None:
        """Serialize value as JSON and store it under key."""
        payload = json.dumps(value, ensure_ascii=False)
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, payload, to_iso(utc_now())),
            )

    def load(self, key: str) -> Optional[Any]:
        """
        Load and deserialize the value stored under key.

        Returns:
            The decoded value, or None if the key was never saved

        Raises:
            json.JSONDecodeError: If the stored text is not valid JSON
        """
        with self._connection() as conn:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?",
                (key,),
            ).fetchone()

        if row is None:
            return None
        return json.loads(row["value"])

    # =========================================================================
    # Typed Helpers
    # =========================================================================

    def save_jobs(self, jobs: list[Job]) -> None:
        self.save(JOBS_KEY, [job.to_dict() for job in jobs])

    def save_runs(self, runs: list[JobRun]) -> None:
        self.save(RUNS_KEY, [run.to_dict() for run in runs])

    def load_jobs(self) -> list[Job]:
        """
        Load persisted jobs.

        Unreadable state is logged and treated as empty so that a corrupted
        store cannot prevent startup.
        """
        try:
            raw = self.load(JOBS_KEY)
            return [Job.from_dict(item) for item in raw or []]
        except Exception as e:
            logger.error(f"Failed to load jobs from {self.db_path}: {e}")
            return []

    def load_runs(self) -> list[JobRun]:
        """
        Load persisted job runs.

        Unreadable state is logged and treated as empty.
        """
        try:
            raw = self.load(RUNS_KEY)
            return [JobRun.from_dict(item) for item in raw or []]
        except Exception as e:
            logger.error(f"Failed to load job runs from {self.db_path}: {e}")
            return []
