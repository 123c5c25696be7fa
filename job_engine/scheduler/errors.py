"""
Engine-specific exceptions.

Only caller mistakes are raised. Failures of an individual job
(non-zero exit, collaborator error, timeout, restart) are recorded on the
JobRun and never propagate out of the dispatcher.
"""


class EngineError(Exception):
    """Base exception for all engine errors."""
    pass


class ValidationError(EngineError):
    """
    Raised when a submission is rejected.

    Examples:
    - Empty job name or command
    - SCHEDULED job without a scheduled time
    - Scheduled time not strictly in the future
    """

    def __init__(self, message: str, field: str = None):
        self.field = field
        super().__init__(message)


class JobNotFoundError(EngineError):
    """Raised when a requested job does not exist."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class JobRunNotFoundError(EngineError):
    """Raised when a requested job run does not exist."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"JobRun not found: {run_id}")


class InvalidTransitionError(EngineError):
    """
    Raised when a status change would move a run backwards
    or out of a terminal state.
    """

    def __init__(self, run_id: str, current_status: str, requested_status: str):
        self.run_id = run_id
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Invalid transition for run {run_id}: "
            f"'{current_status}' -> '{requested_status}'"
        )


class RunInvariantError(EngineError):
    """
    Raised when an update would leave a run inconsistent, e.g. a terminal
    status without end_time/exit_code or a changed run_id.
    """
    pass


class CommandRunnerError(EngineError):
    """Raised by an execution collaborator that produced an unusable result."""
    pass
