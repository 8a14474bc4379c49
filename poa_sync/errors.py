"""
Exception taxonomy for the sync pipeline.

Per-task faults (fetch, extraction, required fields, dates) are caught by the
orchestrator and turned into task states.  Destination faults are not: they
abort the run and carry the store's own error text.
"""


class PoaSyncError(Exception):
    """Base class for every error raised by poa_sync."""


class ConfigError(PoaSyncError):
    pass


class SourceFetchError(PoaSyncError):
    """A single message could not be listed or fetched from the mail source."""


class ExtractionError(PoaSyncError):
    """Markup could not be parsed.  Never escapes the extractor."""


class MissingRequiredFieldError(PoaSyncError):
    def __init__(self, fields):
        self.fields = list(fields)
        super().__init__(f"{' & '.join(self.fields)} not found in email body")


class InvalidDateError(PoaSyncError):
    """Start/end date missing, unparseable, or out of order.  Recoverable."""

    def __init__(self, labels, detail="missing or invalid"):
        self.labels = list(labels)
        self.detail = detail
        super().__init__(f"{' & '.join(self.labels) or 'Dates'} {detail}")


class DestinationMutationError(PoaSyncError):
    """Schema provisioning, batch write or log append failed.

    ``str(exc)`` is the destination's native error message, unchanged.
    """

    def __init__(self, message, status=None):
        self.status = status
        super().__init__(message)


class LogReadError(PoaSyncError):
    def __init__(self, message, status=None):
        self.status = status
        super().__init__(message)


class BucketNotFoundError(LogReadError):
    """The requested sheet does not exist yet (first run)."""


class ResponseShapeError(PoaSyncError):
    """An API payload failed validation at the adapter boundary."""
