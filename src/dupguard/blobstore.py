from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .logging import get_logger

logger = get_logger(__name__)


class BlobStoreError(Exception):
    """Raised when a blob cannot be written, read or deleted."""


class BlobStore(ABC):
    """Opaque object storage for uploaded image bytes."""

    @abstractmethod
    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Store bytes under `key` and return the object's URL."""
        raise NotImplementedError()

    @abstractmethod
    def get(self, key: str) -> bytes:
        raise NotImplementedError()

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError()

    @abstractmethod
    def presign_put(self, key: str, content_type: str, ttl: int) -> str:
        """Return a URL that accepts a PUT of `key` for `ttl` seconds."""
        raise NotImplementedError()


class InMemoryBlobStore(BlobStore):
    """Dictionary-backed blob store."""

    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}
        self.metadata: Dict[str, Dict[str, str]] = {}

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        self.objects[key] = data
        self.metadata[key] = dict(metadata or {}, ContentType=content_type)
        return f"memory://{key}"

    def get(self, key: str) -> bytes:
        try:
            return self.objects[key]
        except KeyError as exc:
            raise BlobStoreError(f"No blob stored under {key}") from exc

    def delete(self, key: str) -> None:
        self.objects.pop(key, None)
        self.metadata.pop(key, None)

    def presign_put(self, key: str, content_type: str, ttl: int) -> str:
        return f"memory://{key}?content_type={content_type}&expires={ttl}"


class S3BlobStore(BlobStore):
    """S3 bucket holding uploaded images."""

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        connect_timeout: float = 5.0,
        read_timeout: float = 10.0,
        client: Any = None,
    ) -> None:
        self.bucket = bucket
        self.region = region or "us-east-1"
        if client is None:
            config = Config(connect_timeout=connect_timeout, read_timeout=read_timeout)
            client = boto3.client("s3", region_name=self.region, config=config)
        self.s3_client = client

    def object_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata or {},
            )
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(f"Failed to upload s3://{self.bucket}/{key}: {exc}") from exc

        logger.info(f"Uploaded s3://{self.bucket}/{key} ({len(data)} bytes)")
        return self.object_url(key)

    def get(self, key: str) -> bytes:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(f"Failed to read s3://{self.bucket}/{key}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(f"Failed to delete s3://{self.bucket}/{key}: {exc}") from exc
        logger.info(f"Deleted s3://{self.bucket}/{key}")

    def presign_put(self, key: str, content_type: str, ttl: int) -> str:
        try:
            return self.s3_client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=ttl,
            )
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(f"Failed to presign s3://{self.bucket}/{key}: {exc}") from exc
