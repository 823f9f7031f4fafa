"""Domain-specific exception types."""


class QuarterHourError(Exception):
    """Base application error."""


class PersistenceError(QuarterHourError):
    """Raised when the remote store fails to complete a request."""


class DuplicateSlotError(PersistenceError):
    """Raised by the remote store when a quarter hour is already booked."""


class LoadError(QuarterHourError):
    """Raised when slots or projects cannot be fetched from the remote store."""


class MutationError(QuarterHourError):
    """Raised when a remote call fails after an optimistic change was applied."""


class ConflictError(MutationError):
    """Raised when the remote store rejects an insert as a duplicate slot."""


class ValidationError(QuarterHourError):
    """Raised when an operation violates a local precondition."""


class SettingsError(QuarterHourError):
    """Raised when settings cannot be validated or saved."""
