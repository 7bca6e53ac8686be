"""Custom exceptions for VoxStudio Engine."""


class StoreError(Exception):
    """Base exception for document store operations.

    Carries the HTTP status and the store-provided error detail when the
    failure came from a store response.
    """

    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class NotFoundError(StoreError):
    """Exception raised when a path segment or file does not exist."""
    pass


class ConflictError(StoreError):
    """Exception raised when a create collides with an existing item."""
    pass


class SessionExpiredError(StoreError):
    """Exception raised when a chunk is sent after the upload session expired."""
    pass


class ChunkUploadError(StoreError):
    """Exception raised when the store rejects a chunk."""
    pass


class UploadValidationError(ValueError):
    """Exception raised when input is rejected before any network call."""
    pass
