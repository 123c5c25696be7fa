"""
Engine configuration.

Values are read from environment variables once at import time.
Entry points call load_dotenv() before importing this module so that a local
.env file can supply them.

Configuration:
- JOB_EXECUTION_TIMEOUT_MS: Per-run execution timeout (default: 30000)
- MAX_CONCURRENT_JOBS: Maximum simultaneously RUNNING runs (default: 2)
- DISPATCH_POLL_INTERVAL_SECONDS: Dispatcher tick for due schedules (default: 1.0)
- JOB_ENGINE_DB_PATH: SQLite file for persisted jobs and runs
- JOB_ENGINE_RUNNER: Execution collaborator, "subprocess" or "ollama"
- OLLAMA_BASE_URL / OLLAMA_MODEL: Settings for the "ollama" runner
- LOG_LEVEL: Logging level name
- JOB_ENGINE_LOG_DIR: Directory for daily log files ("" for console only)
- JOB_ENGINE_API_URL: Server address used by the CLI client commands
- JOB_ENGINE_API_TIMEOUT_SECONDS: HTTP timeout for those commands (default: 10)
"""

import os
from dataclasses import dataclass
from pathlib import Path


JOB_EXECUTION_TIMEOUT_MS = int(os.getenv("JOB_EXECUTION_TIMEOUT_MS", "30000"))
MAX_CONCURRENT_JOBS = max(1, int(os.getenv("MAX_CONCURRENT_JOBS", "2")))
DISPATCH_POLL_INTERVAL_SECONDS = float(os.getenv("DISPATCH_POLL_INTERVAL_SECONDS", "1.0"))

JOB_ENGINE_DB_PATH = Path(os.getenv("JOB_ENGINE_DB_PATH", "data/job_engine.db"))
JOB_ENGINE_RUNNER = os.getenv("JOB_ENGINE_RUNNER", "subprocess").lower()

OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "qwen3:30b")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# Empty string disables the daily log file (console only)
LOG_DIR = os.getenv("JOB_ENGINE_LOG_DIR", "logs") or None

API_URL = os.getenv("JOB_ENGINE_API_URL", "http://127.0.0.1:8000")
API_TIMEOUT_SECONDS = float(os.getenv("JOB_ENGINE_API_TIMEOUT_SECONDS", "10.0"))


@dataclass(frozen=True)
class EngineConfig:
    """Settings consumed by the scheduler components."""

    timeout_ms: int = JOB_EXECUTION_TIMEOUT_MS
    max_concurrent_jobs: int = MAX_CONCURRENT_JOBS
    poll_interval: float = DISPATCH_POLL_INTERVAL_SECONDS
    db_path: Path = JOB_ENGINE_DB_PATH
    runner: str = JOB_ENGINE_RUNNER

    def __post_init__(self):
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.max_concurrent_jobs < 1:
            raise ValueError(
                f"max_concurrent_jobs must be >= 1, got {self.max_concurrent_jobs}"
            )
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from the current environment (re-reads variables)."""
        return cls(
            timeout_ms=int(os.getenv("JOB_EXECUTION_TIMEOUT_MS", str(JOB_EXECUTION_TIMEOUT_MS))),
            max_concurrent_jobs=max(
                1, int(os.getenv("MAX_CONCURRENT_JOBS", str(MAX_CONCURRENT_JOBS)))
            ),
            poll_interval=float(
                os.getenv("DISPATCH_POLL_INTERVAL_SECONDS", str(DISPATCH_POLL_INTERVAL_SECONDS))
            ),
            db_path=Path(os.getenv("JOB_ENGINE_DB_PATH", str(JOB_ENGINE_DB_PATH))),
            runner=os.getenv("JOB_ENGINE_RUNNER", JOB_ENGINE_RUNNER).lower(),
        )
