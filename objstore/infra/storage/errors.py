"""Error taxonomy for object storage operations.

Every failure raised by the client derives from :class:`ObjectStoreError`.
The original SDK or I/O exception is always chained as ``__cause__``.
"""

from __future__ import annotations


class ObjectStoreError(RuntimeError):
    """Raised when object storage operations fail."""


class ConfigurationError(ObjectStoreError, ValueError):
    """Raised when the client cannot be configured (e.g. no credentials)."""


class BackendError(ObjectStoreError):
    """Raised when the storage SDK reports a failure for an operation."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.code = code


class SignatureError(BackendError):
    """Raised when a signed URL could not be produced."""


class ReadError(BackendError):
    """Raised when a download fails before its stream becomes readable."""


class ObjectNotFoundError(BackendError):
    """Raised when the requested object does not exist."""


class StreamError(ObjectStoreError):
    """Raised when a transfer stream fails after it was handed out."""


class StreamClosedError(StreamError):
    """Raised when reading from a stream that was closed or cancelled."""


class WriteError(StreamError):
    """Raised when piping an object into a local file fails."""

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(message)
        self.path = path


class NotFoundError(ObjectStoreError):
    """Raised when a local source file does not exist."""

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(message)
        self.path = path


class SourceFileError(ObjectStoreError):
    """Raised when a local source file exists but cannot be read."""

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(message)
        self.path = path
