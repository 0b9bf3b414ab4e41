"""
Error taxonomy for Kanbill.

Validation errors block the operation that raised them. Sync and recurrence
errors are logged and reported to the user but never undo local state.
"""


class KanbillError(Exception):
    """Base class for all Kanbill errors."""


class NotFoundError(KanbillError, LookupError):
    """A task or column id is not present on the board."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind.capitalize()} not found: {identifier}")


class ValidationError(KanbillError, ValueError):
    """Invalid input, rejected before any state is touched."""


class SyncFailure(KanbillError):
    """A remote store call was rejected."""

    def __init__(self, operation: str, task_id: str | None, cause: BaseException | None = None):
        self.operation = operation
        self.task_id = task_id
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Remote {operation} failed for task {task_id}{detail}")


class RecurrenceComputationError(KanbillError, ValueError):
    """The next occurrence of a recurring task could not be computed."""
