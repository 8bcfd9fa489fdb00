"""Error taxonomy for the scheduling core.

Every error carries a short, user-facing message. Messages never include
internal identifiers or stack traces; details go to the logs instead.
"""


class SchedulingError(Exception):
    """Base class for all scheduling errors."""

    status_code = 500
    code = "SCHEDULING_ERROR"

    def __init__(self, message: str = "Scheduling operation failed"):
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Raised when an input is malformed. Nothing has been mutated."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(SchedulingError):
    """Raised when no matching slot or appointment exists."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(SchedulingError):
    """Raised when a slot is already held or a concurrent write won the race."""

    status_code = 409
    code = "CONFLICT"


class StorageError(SchedulingError):
    """Raised when the persistence layer fails."""

    status_code = 500
    code = "STORAGE_ERROR"


class NotifierError(SchedulingError):
    """Raised by notification transports. Never surfaced to callers."""

    code = "NOTIFIER_ERROR"
