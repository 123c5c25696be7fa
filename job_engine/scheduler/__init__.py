"""
Job Engine Scheduler Core.

Admission, concurrency-gated dispatch, timeout-bounded execution and
startup reconciliation of job runs.
"""

from .entities import (
    ExecutionKind,
    RunStatus,
    TERMINAL_STATUSES,
    Job,
    JobRun,
    CommandResult,
)
from .errors import (
    EngineError,
    ValidationError,
    JobNotFoundError,
    JobRunNotFoundError,
    InvalidTransitionError,
    RunInvariantError,
    CommandRunnerError,
)
from .persistence import PersistenceAdapter
from .run_store import RunStore
from .admission import AdmissionService
from .runners import CommandRunner, SubprocessCommandRunner, OllamaCommandSimulator, build_runner
from .executor import Executor
from .dispatcher import Dispatcher, DispatcherState
from .recovery import Reconciler
from .service import EngineService, RunLog

__all__ = [
    # Entities
    "ExecutionKind",
    "RunStatus",
    "TERMINAL_STATUSES",
    "Job",
    "JobRun",
    "CommandResult",
    # Errors
    "EngineError",
    "ValidationError",
    "JobNotFoundError",
    "JobRunNotFoundError",
    "InvalidTransitionError",
    "RunInvariantError",
    "CommandRunnerError",
    # Persistence
    "PersistenceAdapter",
    # Store
    "RunStore",
    # Admission
    "AdmissionService",
    # Runners
    "CommandRunner",
    "SubprocessCommandRunner",
    "OllamaCommandSimulator",
    "build_runner",
    # Executor
    "Executor",
    # Dispatcher
    "Dispatcher",
    "DispatcherState",
    # Reconciler
    "Reconciler",
    # Service
    "EngineService",
    "RunLog",
]
