"""Asynchronous convenience client for S3-compatible object storage."""

from objstore.common.logging import setup_logging
from objstore.infra.storage import (
    ClientConfig,
    ListResult,
    ObjectLocator,
    ObjectStoreError,
    S3ObjectStoreClient,
    SignedUrlOptions,
    TransferStream,
)

__all__ = [
    "ClientConfig",
    "ListResult",
    "ObjectLocator",
    "ObjectStoreError",
    "S3ObjectStoreClient",
    "SignedUrlOptions",
    "TransferStream",
    "setup_logging",
]
