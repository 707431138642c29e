"""Domain exceptions raised by the FMS services.

The API layer maps each of these to an HTTP status (see ``api.fms``).
Messages must never name a facility the caller cannot access.
"""


class FMSError(Exception):
    """Base class for FMS engine errors."""


class ValidationError(FMSError):
    """A required input is missing or malformed.

    Attributes:
        field: Name of the offending request field, as the client spelled it.
    """

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class NotFoundError(FMSError):
    """Unknown facility, configuration, sync log or change."""


class AuthorizationError(FMSError):
    """The actor may not act on the requested facility."""


class ConflictError(FMSError):
    """Duplicate mapping, sync already running, or configuration still referenced."""


class ApplyError(FMSError):
    """A single change could not be applied. Never aborts the rest of a batch."""
