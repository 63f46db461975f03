# backend/pagecast/services/storage.py
import asyncio
import os
import tempfile
import time
from pathlib import Path
from typing import Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import StoreFailed
from ..utils.logging import service_logger


class Store(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store a complete object under `key` and return its locator"""


def build_audio_key(document_id: int, page_number: int, timestamp_ms: int, extension: str) -> str:
    """Object key for one page's audio, unique per regeneration"""
    return f"audio/{document_id}-{page_number}-{timestamp_ms}.{extension.lstrip('.')}"


def _validate_key(key: str) -> str:
    if not key or key.startswith("/") or ".." in key.split("/"):
        raise StoreFailed(f"Invalid object key: {key!r}")
    return key


class S3ArtifactStore:
    """S3-compatible object storage (Tigris by default)"""

    def __init__(
            self,
            bucket: Optional[str],
            endpoint_url: str,
            region_name: str = "auto",
            aws_access_key_id: Optional[str] = None,
            aws_secret_access_key: Optional[str] = None,
            public_base_url: Optional[str] = None,
            client=None
    ):
        self.bucket = bucket
        self.endpoint_url = endpoint_url.rstrip("/")
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
            region_name=region_name,
        )

    def locator_for(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return f"{self.endpoint_url}/{self.bucket}/{key}"

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        _validate_key(key)
        if not self.bucket:
            raise StoreFailed("S3 bucket is not configured")

        try:
            # put_object is a single request: the object exists completely or not at all
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type
            )
        except (BotoCoreError, ClientError) as e:
            service_logger.error("Failed to upload audio object", extra={
                "key": key,
                "bucket": self.bucket,
                "error": str(e)
            })
            raise StoreFailed(f"Upload of {key} failed", e) from e

        service_logger.info("Uploaded audio object", extra={
            "key": key,
            "bucket": self.bucket,
            "size_bytes": len(data)
        })
        return self.locator_for(key)


class LocalArtifactStore:
    """Filesystem storage under STORAGE_PATH, served by the /storage/audio static mount"""

    def __init__(self, root: Path, url_prefix: str = "/storage"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        _validate_key(key)
        try:
            await asyncio.to_thread(self._write_atomic, self.root / key, data)
        except OSError as e:
            raise StoreFailed(f"Writing {key} failed", e) from e

        service_logger.info("Stored audio file", extra={
            "key": key,
            "size_bytes": len(data),
            "content_type": content_type
        })
        return f"{self.url_prefix}/{key}"

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".part")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


def timestamp_millis() -> int:
    return time.time_ns() // 1_000_000
