"""Upload of staged documents to S3-compatible object storage."""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import ConnectivityError
from ..models.migration import StorageConfig

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".json": "application/json",
    ".xml": "application/xml",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}


def content_type_for(file_name: str) -> str:
    """Deduce a content type from a file extension."""
    extension = os.path.splitext(file_name)[1].lower()
    return CONTENT_TYPES.get(extension, DEFAULT_CONTENT_TYPE)


class ObjectUploader:
    """
    Publishes files under ``<folder>/<name>`` with public-read visibility.

    Public addresses are built as ``https://<bucket>.<endpoint-host>/<key>``.
    """

    def __init__(
        self,
        storage: StorageConfig,
        folder: str,
        client: Optional[Any] = None,
        retries: int = 3,
    ):
        """
        Initialize the uploader.

        Args:
            storage: Bucket, endpoint and credentials
            folder: Key prefix for every uploaded object
            client: Pre-built S3 client (created lazily if omitted)
            retries: Maximum attempts for the S3 client
        """
        self.storage = storage
        self.folder = folder.strip("/")
        self.retries = retries
        self._client = client

    def _get_client(self):
        """Get the S3 client (lazily initialized)."""
        if self._client is not None:
            return self._client

        config = BotoConfig(
            signature_version="s3v4",
            retries={
                "max_attempts": self.retries,
                "mode": "standard",
            },
            s3={
                "addressing_style": "path",
            },
        )

        try:
            self._client = boto3.client(
                "s3",
                endpoint_url=self.storage.endpoint_url,
                aws_access_key_id=self.storage.access_key,
                aws_secret_access_key=self.storage.secret_key,
                region_name=self.storage.region,
                config=config,
            )
        except (BotoCoreError, ValueError) as e:
            raise ConnectivityError(
                f"Object storage client could not be created: {e}",
                {"endpoint": self.storage.endpoint_url, "bucket": self.storage.bucket},
            ) from e
        return self._client

    def object_key(self, name: str) -> str:
        return f"{self.folder}/{name}" if self.folder else name

    def public_url(self, key: str) -> str:
        return f"https://{self.storage.bucket}.{self.storage.endpoint_host}/{key}"

    def upload(self, local_path: str, name: str) -> str:
        """
        Upload a local file.

        Args:
            local_path: File to upload
            name: Object name inside the folder

        Returns:
            Public address of the object

        Raises:
            ConnectivityError: On any read, transport or storage failure
        """
        key = self.object_key(name)
        logger.info(f"Uploading {name} to {self.storage.bucket}/{key}")

        try:
            with open(local_path, "rb") as f:
                body = f.read()
            self._get_client().put_object(
                Bucket=self.storage.bucket,
                Key=key,
                Body=body,
                ContentType=content_type_for(name),
                ACL="public-read",
            )
        except ConnectivityError:
            raise
        except (BotoCoreError, ClientError, OSError) as e:
            raise ConnectivityError(
                f"Failed to upload {name}: {e}",
                {"key": key, "bucket": self.storage.bucket},
            ) from e

        url = self.public_url(key)
        logger.info(f"Uploaded: {url}")
        return url

    def test_connection(self) -> None:
        """
        Verify write access by storing a small text object under the folder.

        Raises:
            ConnectivityError: If the write fails
        """
        timestamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        key = self.object_key(f"connection-test-{timestamp}.txt")
        try:
            self._get_client().put_object(
                Bucket=self.storage.bucket,
                Key=key,
                Body=b"Test connection file",
                ContentType="text/plain",
            )
        except ConnectivityError:
            raise
        except (BotoCoreError, ClientError) as e:
            raise ConnectivityError(
                f"Object storage connection failed: {e}",
                {"key": key, "bucket": self.storage.bucket},
            ) from e
        logger.info("Object storage connection successful")
