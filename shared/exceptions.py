"""Error taxonomy shared by clients, the change tracker and the ingestion service.

Only TransientRemoteError is retried by the resilient invoke helper. Everything
else is surfaced to the caller immediately.
"""


class IndexSyncError(Exception):
    """Base class for all errors raised by index_sync_bridge."""


class ConfigurationError(IndexSyncError):
    """A required setting is missing or invalid. Raised before any remote call."""


class TransientRemoteError(IndexSyncError):
    """A remote call failed in a way that may succeed on retry (timeouts, 429, 5xx)."""


class AuthorizationError(IndexSyncError):
    """A remote backend rejected the credentials (401/403). Never retried.

    Attributes:
        engine: Name of the backend engine (e.g. "qdrant").
        url: The URL that was requested.
        status_code: HTTP status returned by the backend.
    """

    def __init__(self, message: str, engine: str = "", url: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.engine = engine
        self.url = url
        self.status_code = status_code


class RemoteRequestError(IndexSyncError):
    """A remote call returned a non-retryable error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NeedsIngestionError(IndexSyncError):
    """The vector index has not been created yet, so there is nothing to search."""


class UnsupportedDocumentTypeError(IndexSyncError):
    """No extractor is registered for a document type. Treated as empty content."""


class ConflictError(IndexSyncError):
    """The change-tracking store rejected a write."""


class IncompleteEnumerationError(IndexSyncError):
    """A source could not list part of its documents. Deletions must not be reconciled for that pass."""
