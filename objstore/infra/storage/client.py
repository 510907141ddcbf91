"""Storage client protocol and data types.

This module defines the asynchronous interface for object storage operations
together with the value types passed in and out of it: locators, signed URL
options, listing results and the per-client configuration.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any, AsyncIterator, Mapping, Protocol, Union

from objstore.common.config import DEFAULT_EXPIRATION_SECONDS
from objstore.infra.storage.errors import ConfigurationError

if TYPE_CHECKING:
    from objstore.infra.storage.streams import TransferStream

Body = Union[bytes, bytearray, str, IO[bytes]]
PathLike = Union[str, Path]

SIGNABLE_OPERATIONS = frozenset(
    {"get_object", "put_object", "delete_object", "head_object"}
)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _validate_expiration(seconds: Any) -> int:
    if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds <= 0:
        raise ConfigurationError(
            f"expiration_seconds must be a positive integer, got {seconds!r}"
        )
    return seconds


def normalize_operation(operation: str) -> str:
    """Map ``getObject``-style names onto boto3 client method names."""
    name = _CAMEL_BOUNDARY.sub("_", operation.strip()).lower()
    return name


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Configuration owned by a single client instance."""

    access_key_id: str | None = field(default=None, repr=False)
    secret_access_key: str | None = field(default=None, repr=False)
    expiration_seconds: int = DEFAULT_EXPIRATION_SECONDS
    region: str | None = None
    endpoint_url: str | None = None
    addressing_style: str = "path"
    use_ssl: bool = True

    def __post_init__(self) -> None:
        _validate_expiration(self.expiration_seconds)

    @property
    def has_credentials(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)

    def with_expiration(self, seconds: int) -> "ClientConfig":
        return replace(self, expiration_seconds=seconds)


@dataclass(frozen=True, slots=True)
class ObjectLocator:
    """Addresses a single object: the (bucket, key) pair."""

    bucket: str
    key: str

    def __post_init__(self) -> None:
        if not self.bucket:
            raise ValueError("bucket must be a non-empty string")
        if not self.key:
            raise ValueError("key must be a non-empty string")

    @property
    def copy_source(self) -> dict[str, str]:
        return {"Bucket": self.bucket, "Key": self.key}

    def __str__(self) -> str:
        return f"{self.bucket}/{self.key}"


@dataclass(frozen=True, slots=True)
class SignedUrlOptions:
    """Optional parameters for signed URL generation."""

    operation: str = "get_object"
    content_type: str | None = None
    acl: str | None = None
    response_content_disposition: str | None = None

    @property
    def client_method(self) -> str:
        return normalize_operation(self.operation)

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.content_type:
            params["ContentType"] = self.content_type
        if self.acl:
            params["ACL"] = self.acl
        if self.response_content_disposition:
            params["ResponseContentDisposition"] = self.response_content_disposition
        return params


@dataclass(frozen=True, slots=True)
class ObjectSummary:
    """One entry of a listing."""

    key: str
    size: int
    last_modified: datetime | None = None
    etag: str | None = None
    storage_class: str | None = None

    @classmethod
    def from_response(cls, entry: Mapping[str, Any]) -> "ObjectSummary":
        size = entry.get("Size")
        return cls(
            key=str(entry["Key"]),
            size=int(size) if size is not None else 0,
            last_modified=entry.get("LastModified"),
            etag=entry.get("ETag"),
            storage_class=entry.get("StorageClass"),
        )


@dataclass(frozen=True, slots=True)
class ListResult:
    """A single page of a prefix listing, as seen at call time."""

    bucket: str
    prefix: str | None
    objects: tuple[ObjectSummary, ...] = ()
    is_truncated: bool = False
    next_marker: str | None = None

    @property
    def keys(self) -> list[str]:
        return [obj.key for obj in self.objects]

    def __contains__(self, key: object) -> bool:
        return any(obj.key == key for obj in self.objects)

    def __len__(self) -> int:
        return len(self.objects)


@dataclass(frozen=True, slots=True)
class ObjectHead:
    """Metadata from a HEAD object request."""

    size_bytes: int
    etag: str | None
    content_type: str | None
    last_modified: datetime | None = None


class ObjectStore(Protocol):
    """Protocol defining the interface for object storage backends.

    Every operation is a coroutine. Failures are raised as
    :class:`~objstore.infra.storage.errors.ObjectStoreError` subclasses.
    """

    def get_expiration(self) -> int:
        """Return the expiry window, in seconds, used for signed URLs."""
        ...

    def set_expiration(self, seconds: int) -> None:
        """Replace the expiry window used by later signed URLs.

        Raises:
            ConfigurationError: If ``seconds`` is not a positive integer.
        """
        ...

    async def get_signed_url(
        self,
        locator: ObjectLocator,
        options: SignedUrlOptions | None = None,
    ) -> str:
        """Generate a time-limited URL for one operation on one object.

        Args:
            locator: Object the URL grants access to.
            options: Operation (default ``get_object``) and optional
                ContentType, ACL and ResponseContentDisposition.

        Returns:
            The signed URL, valid for ``get_expiration()`` seconds.

        Raises:
            SignatureError: If the URL cannot be produced.
        """
        ...

    async def get_object_stream(self, locator: ObjectLocator) -> "TransferStream":
        """Open a download stream.

        Returns once the body is readable, before the transfer completes.
        The caller owns the returned stream and must close it.

        Raises:
            ReadError: If the object cannot be opened.
        """
        ...

    async def save_object_to_file(
        self, locator: ObjectLocator, destination_path: PathLike
    ) -> str:
        """Download an object into a local file.

        Returns:
            ``destination_path`` as a string, once the file is written.

        Raises:
            WriteError: If the download or the file write fails.
        """
        ...

    async def list_objects(
        self,
        bucket: str,
        prefix: str | None = None,
        *,
        marker: str | None = None,
        max_keys: int | None = None,
    ) -> ListResult:
        """List one page of objects, optionally filtered by key prefix.

        Raises:
            BackendError: If the listing fails.
        """
        ...

    def iter_objects(
        self,
        bucket: str,
        prefix: str | None = None,
        *,
        page_size: int | None = None,
    ) -> AsyncIterator[ObjectSummary]:
        """Lazily iterate every object under ``prefix`` across pages."""
        ...

    async def delete_object(self, locator: ObjectLocator) -> dict[str, Any]:
        """Delete an object. Deleting a missing key is not an error.

        Raises:
            BackendError: If the operation fails.
        """
        ...

    async def put_bytes(
        self,
        locator: ObjectLocator,
        body: Body,
        content_length: int | None = None,
        *,
        content_type: str | None = None,
    ) -> dict[str, Any]:
        """Upload a body of known length.

        Raises:
            BackendError: If the upload fails.
        """
        ...

    async def put_file(
        self,
        locator: ObjectLocator,
        source_path: PathLike,
        *,
        content_type: str | None = None,
    ) -> dict[str, Any]:
        """Upload a local file.

        Raises:
            NotFoundError: If ``source_path`` does not exist.
            BackendError: If the upload fails.
        """
        ...

    async def copy_object(
        self, source: ObjectLocator, destination: ObjectLocator
    ) -> dict[str, Any]:
        """Server-side copy; the result carries ``key`` of the destination.

        Raises:
            BackendError: If the copy fails.
        """
        ...

    async def head_object(self, locator: ObjectLocator) -> ObjectHead:
        """Get object metadata without downloading the content.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            BackendError: If the operation fails.
        """
        ...
