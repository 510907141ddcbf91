"""S3-compatible storage client implementation.

This module provides an asynchronous client over AWS S3, MinIO and other
S3-compatible object storage services. Every operation issues a single
boto3 call on a worker thread and returns its result to the awaiting
coroutine; nothing is retried and nothing is cached.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import asyncio
import logging
import os
import stat
import time
import uuid
from dataclasses import replace
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from objstore.common.config import get_settings
from objstore.infra.observability.metrics import BYTES_TRANSFERRED, LATENCY, OPERATIONS
from objstore.infra.storage.client import (
    SIGNABLE_OPERATIONS,
    Body,
    ClientConfig,
    ListResult,
    ObjectHead,
    ObjectLocator,
    ObjectSummary,
    PathLike,
    SignedUrlOptions,
)
from objstore.infra.storage.errors import (
    BackendError,
    ConfigurationError,
    NotFoundError,
    ObjectNotFoundError,
    ReadError,
    SignatureError,
    SourceFileError,
    StreamError,
    WriteError,
)
from objstore.infra.storage.streams import TransferStream

if TYPE_CHECKING:
    from objstore.common.config import Settings

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


def _error_code(exc: BaseException) -> str | None:
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code")
        return str(code) if code is not None else None
    return None


def _metadata(response: dict[str, Any] | None) -> dict[str, Any]:
    """Drop transport bookkeeping from an SDK response."""
    return {k: v for k, v in (response or {}).items() if k != "ResponseMetadata"}


class S3ObjectStoreClient:
    """S3-compatible object storage client.

    Holds one :class:`ClientConfig` per instance. ``set_expiration`` replaces
    that instance's config and is not synchronised; callers that need
    isolation should use :meth:`with_expiration` or separate instances.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        settings: "Settings | None" = None,
        client: Any = None,
        chunk_size: int | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Explicit configuration. When it lacks credentials they
                are taken from the environment.
            settings: Environment settings; defaults to ``get_settings()``.
            client: Pre-built boto3 S3 client to use instead of building one.
            chunk_size: Read size for download streams.

        Raises:
            ConfigurationError: If no complete credential pair is available.
        """
        self._settings = settings or get_settings()
        self._config = self._resolve_config(config, self._settings)
        self._chunk_size = int(chunk_size or self._settings.OBJSTORE_CHUNK_SIZE)
        self._client = client if client is not None else self._build_client(self._config)

    @classmethod
    def configure(
        cls,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        *,
        settings: "Settings | None" = None,
        client: Any = None,
        **options: Any,
    ) -> "S3ObjectStoreClient":
        """Build a client from keyword configuration.

        Both keys must be given to be used; otherwise the environment
        credentials apply. Remaining ``options`` are ``ClientConfig`` fields.
        """
        settings = settings or get_settings()
        options.setdefault("expiration_seconds", settings.OBJSTORE_EXPIRATION_SECONDS)
        options.setdefault("region", settings.AWS_REGION)
        options.setdefault("endpoint_url", settings.OBJSTORE_ENDPOINT_URL)
        options.setdefault("addressing_style", settings.OBJSTORE_ADDRESSING_STYLE)
        options.setdefault("use_ssl", settings.OBJSTORE_USE_SSL)
        if access_key_id and secret_access_key:
            config = ClientConfig(
                access_key_id=access_key_id,
                secret_access_key=secret_access_key,
                **options,
            )
        else:
            config = ClientConfig(**options)
        return cls(config, settings=settings, client=client)

    @staticmethod
    def _resolve_config(config: ClientConfig | None, settings: "Settings") -> ClientConfig:
        if config is not None and config.has_credentials:
            return config
        if not settings.has_credentials:
            raise ConfigurationError(
                "Object store credentials are required: pass access_key_id and "
                "secret_access_key or set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY"
            )
        if config is None:
            return ClientConfig(
                access_key_id=settings.AWS_ACCESS_KEY_ID,
                secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                expiration_seconds=settings.OBJSTORE_EXPIRATION_SECONDS,
                region=settings.AWS_REGION,
                endpoint_url=settings.OBJSTORE_ENDPOINT_URL,
                addressing_style=settings.OBJSTORE_ADDRESSING_STYLE,
                use_ssl=settings.OBJSTORE_USE_SSL,
            )
        return replace(
            config,
            access_key_id=settings.AWS_ACCESS_KEY_ID,
            secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        )

    @staticmethod
    def _build_client(config: ClientConfig) -> Any:
        """Create a boto3 S3 client from a client config."""
        addressing_style = (config.addressing_style or "path").strip().lower()
        boto_config = Config(s3={"addressing_style": addressing_style})

        return boto3.client(
            "s3",
            endpoint_url=config.endpoint_url,
            region_name=config.region,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            use_ssl=bool(config.use_ssl),
            config=boto_config,
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    def get_expiration(self) -> int:
        return self._config.expiration_seconds

    def set_expiration(self, seconds: int) -> None:
        self._config = self._config.with_expiration(seconds)

    def with_expiration(self, seconds: int) -> "S3ObjectStoreClient":
        """Return a client sharing the connection but with its own expiry."""
        return type(self)(
            self._config.with_expiration(seconds),
            settings=self._settings,
            client=self._client,
            chunk_size=self._chunk_size,
        )

    async def _invoke(
        self,
        operation: str,
        call: Callable[[], Any],
        *,
        failure: str,
        target: object,
        error_cls: type[BackendError] = BackendError,
    ) -> Any:
        """Run one blocking SDK call on a worker thread."""
        started = time.perf_counter()
        try:
            result = await asyncio.to_thread(call)
        except Exception as exc:
            code = _error_code(exc)
            OPERATIONS.labels(operation=operation, outcome="error").inc()
            logger.debug(
                "Object store operation failed",
                extra={"operation": operation, "target": str(target), "error_code": code},
            )
            raise error_cls(
                f"Failed to {failure}: {exc}", operation=operation, code=code
            ) from exc
        finally:
            LATENCY.labels(operation=operation).observe(time.perf_counter() - started)
        OPERATIONS.labels(operation=operation, outcome="success").inc()
        logger.debug(
            "Object store operation completed",
            extra={"operation": operation, "target": str(target)},
        )
        return result

    async def get_signed_url(
        self,
        locator: ObjectLocator,
        options: SignedUrlOptions | None = None,
    ) -> str:
        """Generate a signed URL valid for the current expiry window."""
        options = options or SignedUrlOptions()
        method = options.client_method
        if method not in SIGNABLE_OPERATIONS:
            raise SignatureError(
                f"Unsupported signed URL operation: {options.operation}",
                operation="get_signed_url",
            )

        params: dict[str, Any] = {"Bucket": locator.bucket, "Key": locator.key}
        params.update(options.to_params())
        expires_in = self.get_expiration()

        url = await self._invoke(
            "get_signed_url",
            partial(
                self._client.generate_presigned_url,
                method,
                Params=params,
                ExpiresIn=int(expires_in),
            ),
            failure="generate signed URL",
            target=locator,
            error_cls=SignatureError,
        )
        if not url:
            raise SignatureError(
                "Generated signed URL is empty", operation="get_signed_url"
            )
        return str(url)

    async def get_object_stream(self, locator: ObjectLocator) -> TransferStream:
        """Open a download stream; returns as soon as the body is readable."""
        stream = TransferStream(locator, chunk_size=self._chunk_size)
        try:
            response = await self._invoke(
                "get_object",
                partial(self._client.get_object, Bucket=locator.bucket, Key=locator.key),
                failure="open object stream",
                target=locator,
                error_cls=ReadError,
            )
        except ReadError as exc:
            stream.fail(exc)
            stream.close()
            raise

        body = response.get("Body")
        if body is None:
            exc = ReadError("S3 response missing Body", operation="get_object")
            stream.fail(exc)
            stream.close()
            raise exc

        stream.attach(body, _metadata(response))
        return stream

    async def get_object_bytes(self, locator: ObjectLocator) -> bytes:
        """Download a whole object into memory."""
        async with await self.get_object_stream(locator) as stream:
            return await stream.read_all()

    async def save_object_to_file(
        self, locator: ObjectLocator, destination_path: PathLike
    ) -> str:
        """Pipe an object into a local file and return the path.

        The object is written to a sibling temporary file that replaces
        ``destination_path`` only once the transfer completes, so a failed
        download leaves an existing destination untouched.
        """
        path = Path(destination_path)
        partial_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.part")

        try:
            stream = await self.get_object_stream(locator)
        except ReadError as exc:
            raise WriteError(
                f"Writestream to {path} did not finish successfully: {exc}",
                path=str(path),
            ) from exc

        try:
            async with stream:
                with open(partial_path, "wb") as sink:
                    async for chunk in stream:
                        await asyncio.to_thread(sink.write, chunk)
                    await asyncio.to_thread(sink.flush)
            await asyncio.to_thread(os.replace, partial_path, path)
        except (OSError, StreamError) as exc:
            self._discard_partial(partial_path)
            raise WriteError(
                f"Writestream to {path} did not finish successfully: {exc}",
                path=str(path),
            ) from exc
        except asyncio.CancelledError:
            self._discard_partial(partial_path)
            raise

        return str(destination_path)

    @staticmethod
    def _discard_partial(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.debug("Could not remove partial download", extra={"path": str(path)})

    async def list_objects(
        self,
        bucket: str,
        prefix: str | None = None,
        *,
        marker: str | None = None,
        max_keys: int | None = None,
    ) -> ListResult:
        """List a single page of objects; pass ``marker`` to continue."""
        params: dict[str, Any] = {"Bucket": bucket}
        if prefix:
            params["Prefix"] = prefix
        if marker:
            params["Marker"] = marker
        if max_keys is not None:
            params["MaxKeys"] = int(max_keys)

        response = await self._invoke(
            "list_objects",
            partial(self._client.list_objects, **params),
            failure="list objects",
            target=bucket,
        )

        objects = tuple(
            ObjectSummary.from_response(entry)
            for entry in response.get("Contents") or []
        )
        is_truncated = bool(response.get("IsTruncated"))
        next_marker = None
        if is_truncated:
            # NextMarker is only returned when a delimiter is set
            next_marker = response.get("NextMarker") or (
                objects[-1].key if objects else None
            )
        return ListResult(
            bucket=bucket,
            prefix=prefix,
            objects=objects,
            is_truncated=is_truncated,
            next_marker=next_marker,
        )

    async def iter_objects(
        self,
        bucket: str,
        prefix: str | None = None,
        *,
        page_size: int | None = None,
    ) -> AsyncIterator[ObjectSummary]:
        """Yield every object under ``prefix``, fetching pages on demand."""
        marker: str | None = None
        while True:
            page = await self.list_objects(
                bucket, prefix, marker=marker, max_keys=page_size
            )
            for summary in page.objects:
                yield summary
            if not page.is_truncated or not page.next_marker:
                return
            marker = page.next_marker

    async def delete_object(self, locator: ObjectLocator) -> dict[str, Any]:
        """Delete an object from storage."""
        response = await self._invoke(
            "delete_object",
            partial(self._client.delete_object, Bucket=locator.bucket, Key=locator.key),
            failure="delete object",
            target=locator,
        )
        return _metadata(response)

    async def put_bytes(
        self,
        locator: ObjectLocator,
        body: Body,
        content_length: int | None = None,
        *,
        content_type: str | None = None,
    ) -> dict[str, Any]:
        """Upload bytes, a string or a readable binary file object."""
        if isinstance(body, str):
            body = body.encode("utf-8")
        if content_length is None:
            if not isinstance(body, (bytes, bytearray)):
                raise ValueError("content_length is required for stream bodies")
            content_length = len(body)
        if content_length < 0:
            raise ValueError("content_length must not be negative")

        params: dict[str, Any] = {
            "Bucket": locator.bucket,
            "Key": locator.key,
            "Body": bytes(body) if isinstance(body, bytearray) else body,
            "ContentLength": int(content_length),
        }
        if content_type:
            params["ContentType"] = content_type

        response = await self._invoke(
            "put_object",
            partial(self._client.put_object, **params),
            failure="put object",
            target=locator,
        )
        BYTES_TRANSFERRED.labels(direction="upload").inc(content_length)
        return _metadata(response)

    async def put_file(
        self,
        locator: ObjectLocator,
        source_path: PathLike,
        *,
        content_type: str | None = None,
    ) -> dict[str, Any]:
        """Upload a local file; a missing file fails before any request."""
        path = Path(source_path)
        try:
            file_info = await asyncio.to_thread(os.stat, path)
        except FileNotFoundError as exc:
            raise NotFoundError(f"Source file not found: {path}", path=str(path)) from exc
        except OSError as exc:
            raise SourceFileError(
                f"Cannot stat source file {path}: {exc}", path=str(path)
            ) from exc
        if not stat.S_ISREG(file_info.st_mode):
            raise NotFoundError(f"Source is not a regular file: {path}", path=str(path))

        try:
            body = open(path, "rb")
        except FileNotFoundError as exc:
            raise NotFoundError(f"Source file not found: {path}", path=str(path)) from exc
        except OSError as exc:
            raise SourceFileError(
                f"Cannot open source file {path}: {exc}", path=str(path)
            ) from exc

        with body:
            return await self.put_bytes(
                locator, body, file_info.st_size, content_type=content_type
            )

    async def copy_object(
        self, source: ObjectLocator, destination: ObjectLocator
    ) -> dict[str, Any]:
        """Server-side copy from ``source`` to ``destination``."""
        response = await self._invoke(
            "copy_object",
            partial(
                self._client.copy_object,
                Bucket=destination.bucket,
                Key=destination.key,
                CopySource=source.copy_source,
            ),
            failure="copy object",
            target=destination,
        )
        return {**_metadata(response), "key": destination.key}

    async def head_object(self, locator: ObjectLocator) -> ObjectHead:
        """Get object metadata without downloading the content."""
        try:
            response = await self._invoke(
                "head_object",
                partial(self._client.head_object, Bucket=locator.bucket, Key=locator.key),
                failure="get object metadata",
                target=locator,
            )
        except BackendError as exc:
            if exc.code in NOT_FOUND_CODES:
                raise ObjectNotFoundError(
                    f"Object not found: {locator}", operation="head_object", code=exc.code
                ) from exc.__cause__
            raise

        size = response.get("ContentLength")
        return ObjectHead(
            size_bytes=int(size) if size is not None else 0,
            etag=response.get("ETag"),
            content_type=response.get("ContentType"),
            last_modified=response.get("LastModified"),
        )
