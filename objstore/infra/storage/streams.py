"""Asynchronous byte stream bound to one in-flight download.

A :class:`TransferStream` wraps the blocking body returned by the storage SDK
and moves reads onto worker threads. Its lifecycle is
``OPEN -> READABLE | ERRORED -> CLOSED`` and an instance is never reused.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, AsyncIterator, Mapping

from objstore.common.config import DEFAULT_CHUNK_SIZE
from objstore.infra.observability.metrics import BYTES_TRANSFERRED
from objstore.infra.storage.client import ObjectLocator
from objstore.infra.storage.errors import StreamClosedError, StreamError

logger = logging.getLogger(__name__)


class StreamState(str, enum.Enum):
    OPEN = "open"
    READABLE = "readable"
    ERRORED = "errored"
    CLOSED = "closed"


class TransferStream:
    """Readable stream over an object body.

    The stream is an async iterator of chunks and an async context manager;
    leaving the ``async with`` block closes it and releases the connection.
    """

    def __init__(
        self,
        locator: ObjectLocator,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.locator = locator
        self.chunk_size = chunk_size
        self._state = StreamState.OPEN
        self._body: Any = None
        self._response: Mapping[str, Any] = {}
        self._error: BaseException | None = None
        self._bytes_read = 0

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is StreamState.CLOSED

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def bytes_read(self) -> int:
        return self._bytes_read

    @property
    def content_length(self) -> int | None:
        length = self._response.get("ContentLength")
        return int(length) if length is not None else None

    @property
    def content_type(self) -> str | None:
        return self._response.get("ContentType")

    @property
    def etag(self) -> str | None:
        return self._response.get("ETag")

    def attach(self, body: Any, response: Mapping[str, Any] | None = None) -> None:
        """Bind the SDK body; the stream becomes readable."""
        if self._state is not StreamState.OPEN:
            raise StreamError(f"Cannot attach a body to a {self._state.value} stream")
        self._body = body
        self._response = dict(response or {})
        self._state = StreamState.READABLE

    def fail(self, exc: BaseException) -> None:
        """Record a failure and release the body; ``close()`` still applies."""
        if self._state is StreamState.CLOSED:
            return
        self._error = exc
        self._state = StreamState.ERRORED
        self._release_body()

    def close(self) -> None:
        if self._state is StreamState.CLOSED:
            return
        self._state = StreamState.CLOSED
        self._release_body()

    def _release_body(self) -> None:
        body, self._body = self._body, None
        if body is not None:
            try:
                body.close()
            except Exception:
                logger.debug(
                    "Error closing body stream",
                    extra={"locator": str(self.locator)},
                    exc_info=True,
                )

    async def aclose(self) -> None:
        self.close()

    def _ensure_readable(self) -> None:
        if self._state is StreamState.READABLE:
            return
        if self._error is not None:
            raise StreamClosedError(
                f"Stream for {self.locator} failed: {self._error}"
            ) from self._error
        raise StreamClosedError(f"Stream for {self.locator} is {self._state.value}")

    def _read_blocking(self, amt: int | None) -> bytes:
        body = self._body
        if body is None:
            raise StreamClosedError(f"Stream for {self.locator} is closed")
        return body.read(amt) if amt is not None else body.read()

    async def read(self, amt: int | None = None) -> bytes:
        """Read up to ``amt`` bytes, or the remainder when ``amt`` is None.

        Returns ``b""`` at end of stream.

        Raises:
            StreamClosedError: If the stream was closed or failed earlier.
            StreamError: If the transfer breaks during this read.
        """
        self._ensure_readable()
        try:
            data = await asyncio.to_thread(self._read_blocking, amt)
        except StreamClosedError:
            raise
        except asyncio.CancelledError:
            self.close()
            raise
        except Exception as exc:
            # close() may have raced the read from another task
            if self._state is StreamState.CLOSED and self._error is None:
                raise StreamClosedError(
                    f"Stream for {self.locator} was closed during read"
                ) from exc
            self.fail(exc)
            raise StreamError(f"Failed to read {self.locator}: {exc}") from exc
        # a body closed under a blocked read returns b"", not an error
        if self._state is not StreamState.READABLE:
            raise StreamClosedError(f"Stream for {self.locator} was closed during read")
        if data:
            self._bytes_read += len(data)
            BYTES_TRANSFERRED.labels(direction="download").inc(len(data))
        return data

    async def read_all(self) -> bytes:
        chunks = [chunk async for chunk in self.iter_chunks()]
        return b"".join(chunks)

    async def iter_chunks(self, chunk_size: int | None = None) -> AsyncIterator[bytes]:
        size = chunk_size or self.chunk_size
        while True:
            chunk = await self.read(size)
            if not chunk:
                break
            yield chunk

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.iter_chunks()

    async def __aenter__(self) -> "TransferStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"TransferStream(locator={self.locator!s}, state={self._state.value}, "
            f"bytes_read={self._bytes_read})"
        )
