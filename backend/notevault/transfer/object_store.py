"""Durable object storage for uploaded notes.

Objects are written privately first and only then made public, so a failed
write never leaves a publicly readable partial object behind.

    ObjectStore          abstract interface
    S3ObjectStore        any S3-compatible service via boto3
    InMemoryObjectStore  test double
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from notevault.errors import StorageWriteError

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=3600"


@dataclass(frozen=True)
class StoredObject:
    key: str
    url: str
    # Byte count when the body passed through us; None for server-side copies.
    size: Optional[int] = None


class ObjectStore(ABC):
    """Write-once public objects addressed by key."""

    @abstractmethod
    def put_public(self, key: str, body: bytes, content_type: str) -> str:
        """Store *body* under *key*, make it public, return its URL.

        Raises:
            StorageWriteError: If the write or the ACL change fails.
        """

    @abstractmethod
    def copy_public(self, src_key: str, dst_key: str) -> str:
        """Copy *src_key* (with its metadata) to *dst_key*, make it public, return its URL."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove *key*; missing keys are not an error."""

    @abstractmethod
    def public_url(self, key: str) -> str:
        """URL under which a public object is readable."""

    @abstractmethod
    def check(self) -> None:
        """Raise StorageWriteError if the store is unreachable."""


class S3ObjectStore(ObjectStore):
    """Objects in an S3 bucket, published with the ``public-read`` ACL.

    Args:
        bucket:          Bucket name.
        region:          AWS region.
        endpoint_url:    Custom endpoint (MinIO, R2, GCS interop, …).
        public_base_url: URL prefix for readers, e.g. a CDN; defaults to the
                         bucket's virtual-hosted S3 URL.
        client:          Preconfigured boto3 S3 client (tests pass a mock).
    """

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        public_base_url: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        client: Optional[object] = None,
    ) -> None:
        self._bucket = bucket
        self._region = region
        self._endpoint_url = endpoint_url
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None
        if client is None:
            kwargs = {
                "region_name": region,
                "config": Config(
                    connect_timeout=connect_timeout,
                    read_timeout=read_timeout,
                    retries={"max_attempts": 3, "mode": "standard"},
                ),
            }
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            if aws_access_key_id and aws_secret_access_key:
                kwargs["aws_access_key_id"] = aws_access_key_id
                kwargs["aws_secret_access_key"] = aws_secret_access_key
                if aws_session_token:
                    kwargs["aws_session_token"] = aws_session_token
            client = boto3.client("s3", **kwargs)
        self._client = client

    @property
    def bucket(self) -> str:
        return self._bucket

    def public_url(self, key: str) -> str:
        path = quote(key)
        if self._public_base_url:
            return f"{self._public_base_url}/{path}"
        if self._endpoint_url:
            return f"{self._endpoint_url.rstrip('/')}/{self._bucket}/{path}"
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{path}"

    def _publish(self, key: str) -> str:
        """Apply public-read to *key*; on failure remove it and raise."""
        try:
            self._client.put_object_acl(Bucket=self._bucket, Key=key, ACL="public-read")
        except (ClientError, BotoCoreError) as exc:
            logger.error("[objects] Could not make %s public: %s", key, exc)
            self._discard(key)
            raise StorageWriteError(f"Could not make object public: {exc}") from exc
        return self.public_url(key)

    def _discard(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            logger.warning("[objects] Cleanup of private object %s failed: %s", key, exc)

    def put_public(self, key: str, body: bytes, content_type: str) -> str:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
                CacheControl=CACHE_CONTROL,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("[objects] put_object %s failed: %s", key, exc)
            raise StorageWriteError(f"Object write failed: {exc}") from exc

        url = self._publish(key)
        logger.info("[objects] Stored %s (%d bytes)", key, len(body))
        return url

    def copy_public(self, src_key: str, dst_key: str) -> str:
        try:
            self._client.copy_object(
                Bucket=self._bucket,
                Key=dst_key,
                CopySource={"Bucket": self._bucket, "Key": src_key},
                MetadataDirective="COPY",
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("[objects] copy %s -> %s failed: %s", src_key, dst_key, exc)
            raise StorageWriteError(f"Object copy failed: {exc}") from exc

        url = self._publish(dst_key)
        logger.info("[objects] Copied %s -> %s", src_key, dst_key)
        return url

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return
            raise StorageWriteError(f"Object delete failed: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageWriteError(f"Object delete failed: {exc}") from exc

    def check(self) -> None:
        try:
            self._client.head_bucket(Bucket=self._bucket)
        except (ClientError, BotoCoreError) as exc:
            raise StorageWriteError(f"Bucket {self._bucket} unreachable: {exc}") from exc


class InMemoryObjectStore(ObjectStore):
    """Dict-backed store for tests."""

    def __init__(self, base_url: str = "https://objects.test") -> None:
        self._base_url = base_url.rstrip("/")
        self._objects: Dict[str, bytes] = {}
        self._content_types: Dict[str, str] = {}
        self._public: Dict[str, bool] = {}
        self._lock = threading.Lock()

    def public_url(self, key: str) -> str:
        return f"{self._base_url}/{quote(key)}"

    def put_public(self, key: str, body: bytes, content_type: str) -> str:
        with self._lock:
            self._objects[key] = bytes(body)
            self._content_types[key] = content_type
            self._public[key] = True
        return self.public_url(key)

    def copy_public(self, src_key: str, dst_key: str) -> str:
        with self._lock:
            if src_key not in self._objects:
                raise StorageWriteError(f"Object copy failed: {src_key} does not exist")
            self._objects[dst_key] = self._objects[src_key]
            self._content_types[dst_key] = self._content_types[src_key]
            self._public[dst_key] = True
        return self.public_url(dst_key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._objects.pop(key, None)
            self._content_types.pop(key, None)
            self._public.pop(key, None)

    def check(self) -> None:
        return None

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._objects.get(key)

    def is_public(self, key: str) -> bool:
        with self._lock:
            return self._public.get(key, False)

    def keys(self):
        with self._lock:
            return sorted(self._objects)
