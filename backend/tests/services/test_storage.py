# backend/tests/services/test_storage.py
import pytest
from botocore.exceptions import ClientError

from pagecast.errors import StoreFailed
from pagecast.services.storage import LocalArtifactStore, S3ArtifactStore, build_audio_key


class FakeS3Client:
    def __init__(self, error=None):
        self.error = error
        self.objects = {}

    def put_object(self, Bucket, Key, Body, ContentType):
        if self.error is not None:
            raise self.error
        self.objects[(Bucket, Key)] = (Body, ContentType)
        return {"ETag": '"abc"'}


def test_build_audio_key_follows_convention():
    assert build_audio_key(7, 3, 1700000000123, "mp3") == "audio/7-3-1700000000123.mp3"
    assert build_audio_key(7, 3, 1, ".wav") == "audio/7-3-1.wav"


@pytest.mark.asyncio
async def test_s3_put_uploads_and_returns_endpoint_locator():
    client = FakeS3Client()
    store = S3ArtifactStore("books", "https://fly.storage.tigris.dev/", client=client)

    locator = await store.put("audio/1-1-5.mp3", b"bytes", "audio/mpeg")

    assert locator == "https://fly.storage.tigris.dev/books/audio/1-1-5.mp3"
    assert client.objects[("books", "audio/1-1-5.mp3")] == (b"bytes", "audio/mpeg")


@pytest.mark.asyncio
async def test_s3_put_prefers_public_base_url():
    store = S3ArtifactStore(
        "books",
        "https://fly.storage.tigris.dev",
        public_base_url="https://books.fly.storage.tigris.dev/",
        client=FakeS3Client()
    )

    assert await store.put("audio/1-1-5.mp3", b"x", "audio/mpeg") == \
        "https://books.fly.storage.tigris.dev/audio/1-1-5.mp3"


@pytest.mark.asyncio
async def test_s3_client_errors_become_store_failures():
    error = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
    store = S3ArtifactStore("books", "https://s3.test", client=FakeS3Client(error=error))

    with pytest.raises(StoreFailed) as excinfo:
        await store.put("audio/1-1-5.mp3", b"x", "audio/mpeg")
    assert excinfo.value.retryable


@pytest.mark.asyncio
async def test_s3_requires_bucket():
    store = S3ArtifactStore(None, "https://s3.test", client=FakeS3Client())

    with pytest.raises(StoreFailed, match="bucket"):
        await store.put("audio/1-1-5.mp3", b"x", "audio/mpeg")


@pytest.mark.asyncio
async def test_local_store_writes_complete_file(tmp_path):
    store = LocalArtifactStore(tmp_path)

    locator = await store.put("audio/2-1-9.mp3", b"narration", "audio/mpeg")

    assert locator == "/storage/audio/2-1-9.mp3"
    assert (tmp_path / "audio" / "2-1-9.mp3").read_bytes() == b"narration"
    assert not list((tmp_path / "audio").glob("*.part"))


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["", "/abs/key.mp3", "audio/../../escape.mp3"])
async def test_local_store_rejects_unsafe_keys(tmp_path, key):
    with pytest.raises(StoreFailed):
        await LocalArtifactStore(tmp_path).put(key, b"x", "audio/mpeg")


@pytest.mark.asyncio
async def test_local_store_write_error_leaves_nothing_behind(tmp_path):
    blocker = tmp_path / "audio"
    blocker.write_text("a file where a directory should be")

    with pytest.raises(StoreFailed):
        await LocalArtifactStore(tmp_path).put("audio/1-1-1.mp3", b"x", "audio/mpeg")
    assert blocker.read_text() == "a file where a directory should be"
