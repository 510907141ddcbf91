"""End-to-end behaviour of the object store against an in-memory backend."""

from __future__ import annotations

import asyncio
import random
from pathlib import Path

import pytest

from objstore.infra.storage.client import ClientConfig, ObjectLocator
from objstore.infra.storage.errors import (
    BackendError,
    ReadError,
    StreamError,
    WriteError,
)
from objstore.infra.storage.s3_client import S3ObjectStoreClient
from tests.infra.mock_storage import MockS3Backend

FIXTURE = Path(__file__).resolve().parent.parent / "fixtures" / "cat.bin"
BUCKET = "test-bucket"


@pytest.fixture()
def backend():
    return MockS3Backend()


@pytest.fixture()
def store(backend, settings):
    config = ClientConfig(access_key_id="test-key", secret_access_key="test-secret")
    return S3ObjectStoreClient(config, settings=settings, client=backend)


def _key(suffix: str = ".jpg") -> str:
    return f"grumpyCat{random.randint(0, 9999)}{suffix}"


class TestRoundTrip:
    @pytest.mark.asyncio
    async def test_put_file_then_stream(self, store):
        key = _key()
        locator = ObjectLocator(BUCKET, key)

        await store.put_file(locator, FIXTURE)
        stream = await store.get_object_stream(locator)
        async with stream:
            data = b"".join([chunk async for chunk in stream])

        assert data == FIXTURE.read_bytes()
        assert stream.bytes_read == FIXTURE.stat().st_size
        assert stream.closed

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload", [b"", b"x", bytes(range(256)) * 3], ids=["empty", "one", "binary"]
    )
    async def test_put_bytes_then_save(self, store, tmp_path, payload):
        locator = ObjectLocator(BUCKET, "blob.bin")
        destination = tmp_path / "blob.bin"

        await store.put_bytes(locator, payload, len(payload))
        result = await store.save_object_to_file(locator, destination)

        assert result == str(destination)
        assert destination.read_bytes() == payload

    @pytest.mark.asyncio
    async def test_get_object_bytes(self, store):
        locator = ObjectLocator(BUCKET, "notes.txt")
        await store.put_bytes(locator, "meow", content_type="text/plain")

        assert await store.get_object_bytes(locator) == b"meow"

        head = await store.head_object(locator)
        assert head.size_bytes == 4
        assert head.content_type == "text/plain"


class TestDeleteAndList:
    @pytest.mark.asyncio
    async def test_delete_twice_is_not_an_error(self, store):
        locator = ObjectLocator(BUCKET, _key())
        await store.put_bytes(locator, b"abc")

        await store.delete_object(locator)
        second = await store.delete_object(locator)

        assert second == {}

    @pytest.mark.asyncio
    async def test_listing_includes_key_once(self, store):
        key = _key()
        await store.put_bytes(ObjectLocator(BUCKET, key), b"abc")
        await store.put_bytes(ObjectLocator(BUCKET, key), b"abcd")
        await store.put_bytes(ObjectLocator(BUCKET, "other.jpg"), b"z")

        result = await store.list_objects(BUCKET, "grumpy")

        assert result.keys.count(key) == 1
        assert "other.jpg" not in result
        assert result.objects[0].size == 4

    @pytest.mark.asyncio
    async def test_list_objects_does_not_paginate(self, store):
        for index in range(5):
            await store.put_bytes(ObjectLocator(BUCKET, f"page/{index}"), b"x")

        first = await store.list_objects(BUCKET, "page/", max_keys=2)
        second = await store.list_objects(
            BUCKET, "page/", max_keys=2, marker=first.next_marker
        )

        assert first.keys == ["page/0", "page/1"]
        assert first.is_truncated is True
        assert second.keys == ["page/2", "page/3"]

    @pytest.mark.asyncio
    async def test_iter_objects_follows_markers(self, store, backend):
        for index in range(5):
            await store.put_bytes(ObjectLocator(BUCKET, f"page/{index}"), b"x")
        backend.calls.clear()

        keys = [summary.key async for summary in store.iter_objects(BUCKET, "page/", page_size=2)]

        assert keys == [f"page/{index}" for index in range(5)]
        assert backend.calls == ["list_objects"] * 3

    @pytest.mark.asyncio
    async def test_iter_objects_is_lazy(self, store, backend):
        for index in range(4):
            await store.put_bytes(ObjectLocator(BUCKET, f"page/{index}"), b"x")
        backend.calls.clear()

        iterator = store.iter_objects(BUCKET, "page/", page_size=2)
        first = await iterator.__anext__()
        await iterator.aclose()

        assert first.key == "page/0"
        assert backend.calls == ["list_objects"]


class TestCopyAndSign:
    @pytest.mark.asyncio
    async def test_copy_object(self, store):
        source = ObjectLocator(BUCKET, _key())
        destination = ObjectLocator(BUCKET, _key("Copy.jpg"))
        await store.put_file(source, FIXTURE)

        result = await store.copy_object(source, destination)
        listing = await store.list_objects(BUCKET, destination.key)

        assert result["key"] == destination.key
        assert "CopyObjectResult" in result
        assert destination.key in listing
        assert await store.get_object_bytes(destination) == FIXTURE.read_bytes()

    @pytest.mark.asyncio
    async def test_signed_url_resolves_to_object(self, store, backend):
        locator = ObjectLocator(BUCKET, _key())
        await store.put_file(locator, FIXTURE)

        url = await store.get_signed_url(locator)
        fetched = backend.resolve_signed_url(url)

        assert "X-Amz-Expires=28800" in url
        assert len(fetched) == FIXTURE.stat().st_size

    @pytest.mark.asyncio
    async def test_with_expiration_isolated_from_original(self, store):
        locator = ObjectLocator(BUCKET, "cat.jpg")
        short = store.with_expiration(60)

        short_url, default_url = await asyncio.gather(
            short.get_signed_url(locator), store.get_signed_url(locator)
        )

        assert "X-Amz-Expires=60&" in short_url
        assert "X-Amz-Expires=28800&" in default_url


class TestFailures:
    @pytest.mark.asyncio
    async def test_stream_missing_key(self, store):
        with pytest.raises(ReadError) as exc_info:
            await store.get_object_stream(ObjectLocator(BUCKET, "nope.jpg"))

        assert exc_info.value.code == "NoSuchKey"

    @pytest.mark.asyncio
    async def test_save_missing_key_leaves_no_file(self, store, tmp_path):
        destination = tmp_path / "nope.jpg"

        with pytest.raises(WriteError) as exc_info:
            await store.save_object_to_file(ObjectLocator(BUCKET, "nope.jpg"), destination)

        assert exc_info.value.path == str(destination)
        assert not destination.exists()

    @pytest.mark.asyncio
    async def test_save_interrupted_transfer(self, store, backend, tmp_path):
        locator = ObjectLocator(BUCKET, "flaky.bin")
        await store.put_bytes(locator, b"0123456789")
        backend.broken_reads[(BUCKET, "flaky.bin")] = 6
        destination = tmp_path / "flaky.bin"

        with pytest.raises(WriteError) as exc_info:
            await store.save_object_to_file(locator, destination)

        assert isinstance(exc_info.value.__cause__, StreamError)
        assert not destination.exists()
        assert list(tmp_path.glob("*.part")) == []

    @pytest.mark.asyncio
    async def test_failed_save_keeps_existing_file(self, store, backend, tmp_path):
        locator = ObjectLocator(BUCKET, "flaky.bin")
        await store.put_bytes(locator, b"0123456789")
        backend.broken_reads[(BUCKET, "flaky.bin")] = 6
        destination = tmp_path / "flaky.bin"
        destination.write_bytes(b"original")

        with pytest.raises(WriteError):
            await store.save_object_to_file(locator, destination)

        assert destination.read_bytes() == b"original"
        assert list(tmp_path.glob("*.part")) == []

    @pytest.mark.asyncio
    async def test_save_replaces_existing_file(self, store, tmp_path):
        locator = ObjectLocator(BUCKET, "notes.txt")
        await store.put_bytes(locator, b"fresh")
        destination = tmp_path / "notes.txt"
        destination.write_bytes(b"stale contents")

        await store.save_object_to_file(locator, destination)

        assert destination.read_bytes() == b"fresh"
        assert sorted(path.name for path in tmp_path.iterdir()) == ["notes.txt"]

    @pytest.mark.asyncio
    async def test_save_into_missing_directory(self, store, tmp_path):
        locator = ObjectLocator(BUCKET, "cat.jpg")
        await store.put_file(locator, FIXTURE)

        with pytest.raises(WriteError) as exc_info:
            await store.save_object_to_file(locator, tmp_path / "missing" / "cat.jpg")

        assert isinstance(exc_info.value.__cause__, FileNotFoundError)

    @pytest.mark.asyncio
    async def test_put_into_missing_bucket(self, store):
        with pytest.raises(BackendError) as exc_info:
            await store.put_bytes(ObjectLocator("no-bucket", "a"), b"a")

        assert exc_info.value.code == "NoSuchBucket"


@pytest.mark.asyncio
async def test_upload_download_delete_scenario(store, tmp_path):
    """Put a fixture, read it back, delete it and confirm it is gone."""
    locator = ObjectLocator(BUCKET, "a.jpg")

    await store.put_file(locator, FIXTURE)
    async with await store.get_object_stream(locator) as stream:
        assert await stream.read_all() == FIXTURE.read_bytes()
    saved = await store.save_object_to_file(locator, tmp_path / "a.jpg")
    assert Path(saved).read_bytes() == FIXTURE.read_bytes()
    await store.delete_object(locator)

    listing = await store.list_objects(BUCKET, "a.jpg")
    assert "a.jpg" not in listing
