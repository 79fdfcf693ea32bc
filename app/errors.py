"""Error taxonomy for the analysis pipeline.

Every error carries a stable ``code``. Submission and query errors are raised
to the caller; errors raised while a worker processes a task are captured into
the task's ``error`` field instead.
"""

from typing import Optional


class AnalysisError(Exception):
    """Base class for all pipeline errors."""

    code = "AnalysisError"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage


class ValidationError(AnalysisError):
    """Submission rejected synchronously; no task is created."""

    code = "ValidationError"


class UpstreamModelError(AnalysisError):
    """Stage call failed at the transport level or returned nothing."""

    code = "UpstreamModelError"


class ParseError(AnalysisError):
    """Stage response was received but is not structurally usable."""

    code = "ParseError"


class StageTimeoutError(AnalysisError):
    """Stage call exceeded its deadline."""

    code = "TimeoutError"


class TaskCancelledError(AnalysisError):
    """Processing was cancelled (worker shutdown) before the task finished."""

    code = "CancelledError"


class WorkerInterruptedError(AnalysisError):
    """Task was left processing by a worker that is no longer running."""

    code = "WorkerInterruptedError"


class TaskNotFoundError(AnalysisError):
    code = "TaskNotFoundError"

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class TaskStateError(AnalysisError):
    """Requested status transition is not allowed."""

    code = "TaskStateError"


# Errors worth another attempt against the same stage.
RETRYABLE_ERRORS = (UpstreamModelError, StageTimeoutError)
