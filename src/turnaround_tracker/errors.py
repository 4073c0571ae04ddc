"""Error types raised by the scheduling and metrics engine."""


class TrackerError(Exception):
    """Base class for recoverable tracker errors."""


class ValidationError(TrackerError, ValueError):
    """Raised when a record or command is missing required data or is malformed."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors if errors is not None else [message]


class InvalidTransition(TrackerError):
    """Raised when a status change is not permitted from the current status."""


class PrerequisiteNotMet(TrackerError):
    """Raised when an earlier activity in the same lineage is not yet completed."""

    def __init__(self, activity_id: str, blocking):
        self.activity_id = activity_id
        self.blocking = blocking
        super().__init__(
            f"Cannot start '{activity_id}': complete the previous activity "
            f"'{blocking.title}' ({blocking.id}) first"
        )


class NotFoundError(TrackerError, LookupError):
    """Raised when a required reference points at an unknown id."""
