"""Object storage abstraction layer.

This module provides a protocol-based asynchronous abstraction for object
storage backends, supporting S3, MinIO, and other S3-compatible services.
"""

from .client import (
    ClientConfig,
    ListResult,
    ObjectHead,
    ObjectLocator,
    ObjectStore,
    ObjectSummary,
    SignedUrlOptions,
)
from .errors import (
    BackendError,
    ConfigurationError,
    NotFoundError,
    ObjectNotFoundError,
    ObjectStoreError,
    ReadError,
    SignatureError,
    SourceFileError,
    StreamClosedError,
    StreamError,
    WriteError,
)
from .s3_client import S3ObjectStoreClient
from .streams import StreamState, TransferStream

__all__ = [
    "BackendError",
    "ClientConfig",
    "ConfigurationError",
    "ListResult",
    "NotFoundError",
    "ObjectHead",
    "ObjectLocator",
    "ObjectNotFoundError",
    "ObjectStore",
    "ObjectStoreError",
    "ObjectSummary",
    "ReadError",
    "S3ObjectStoreClient",
    "SignatureError",
    "SignedUrlOptions",
    "SourceFileError",
    "StreamClosedError",
    "StreamError",
    "StreamState",
    "TransferStream",
    "WriteError",
]
