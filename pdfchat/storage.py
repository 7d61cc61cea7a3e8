"""
Blob stores holding the uploaded PDF bytes.
Used only to obtain file content for extraction.
"""
from abc import ABC, abstractmethod
from pathlib import Path

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import DownloadError, PersistenceError
from .logging_config import logger


class BlobStore(ABC):
    @abstractmethod
    def upload(self, bucket: str, path: str, data: bytes, content_type: str = "application/pdf") -> None:
        pass

    @abstractmethod
    def download(self, bucket: str, path: str) -> bytes:
        """Return the object's bytes or raise DownloadError."""


class LocalBlobStore(BlobStore):
    """Stores objects on the local filesystem as <root>/<bucket>/<path>."""

    def __init__(self, root: str):
        self.root = Path(root).resolve()

    def _resolve(self, bucket: str, path: str) -> Path:
        target = (self.root / bucket / path).resolve()
        # Keep lookups inside the store root
        if self.root not in target.parents:
            raise DownloadError(f"Invalid object path: {bucket}/{path}")
        return target

    def upload(self, bucket: str, path: str, data: bytes, content_type: str = "application/pdf") -> None:
        target = self._resolve(bucket, path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise PersistenceError(f"Failed to store {bucket}/{path}: {e}") from e
        logger.info("Stored object", bucket=bucket, path=path, size_bytes=len(data))

    def download(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        try:
            return target.read_bytes()
        except OSError as e:
            logger.error("Failed to read object", bucket=bucket, path=path, error=str(e))
            raise DownloadError(f"Failed to download {bucket}/{path}") from e


class S3BlobStore(BlobStore):
    """S3-compatible object storage (AWS S3, Cloudflare R2, MinIO, Supabase S3)."""

    def __init__(self, *, access_key_id: str, secret_access_key: str, endpoint_url: str = None):
        self.client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(signature_version="s3v4"),
        )

    def upload(self, bucket: str, path: str, data: bytes, content_type: str = "application/pdf") -> None:
        try:
            self.client.put_object(Bucket=bucket, Key=path, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to store object", bucket=bucket, path=path, error=str(e))
            raise PersistenceError(f"Failed to store {bucket}/{path}: {e}") from e
        logger.info("Stored object", bucket=bucket, path=path, size_bytes=len(data))

    def download(self, bucket: str, path: str) -> bytes:
        try:
            resp = self.client.get_object(Bucket=bucket, Key=path)
            return resp["Body"].read()
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            logger.error("Failed to download object", bucket=bucket, path=path, code=code)
            raise DownloadError(f"Failed to download {bucket}/{path}") from e
        except BotoCoreError as e:
            logger.error("Failed to download object", bucket=bucket, path=path, error=str(e))
            raise DownloadError(f"Failed to download {bucket}/{path}") from e


def build_blob_store(settings) -> BlobStore:
    if settings.blob_backend == "s3":
        return S3BlobStore(
            access_key_id=settings.require("s3_access_key_id"),
            secret_access_key=settings.require("s3_secret_access_key"),
            endpoint_url=settings.s3_endpoint_url,
        )
    return LocalBlobStore(settings.blob_root)
