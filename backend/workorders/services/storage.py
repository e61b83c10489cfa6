"""
Blob storage for ticket attachments.

WHAT: Presigned upload/download URLs and object deletion on an
S3-compatible bucket.

WHY: Files never pass through the API. The client uploads straight to
storage with a presigned PUT, then registers the metadata; downloads use
short-lived presigned GETs.

HOW: boto3 S3 client. boto3 is synchronous, so calls run in Starlette's
threadpool to keep the event loop free. Client errors become StorageError.
"""

import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from workorders.core.config import settings
from workorders.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class StorageService:
    """
    S3 storage operations for attachments.

    Attributes:
        bucket_name: Bucket holding attachment objects
    """

    def __init__(self, s3_client=None, bucket_name: Optional[str] = None):
        """
        Args:
            s3_client: Preconfigured boto3 S3 client (built from settings if omitted)
            bucket_name: Bucket name (defaults to ATTACHMENT_BUCKET)
        """
        self.s3_client = s3_client or boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_REGION,
        )
        self.bucket_name = bucket_name or settings.ATTACHMENT_BUCKET

    async def generate_upload_url(self, key: str, content_type: str, expires_in: int) -> str:
        """
        Presigned PUT URL for phase one of an upload.

        Raises:
            StorageError: If the URL cannot be generated
        """
        try:
            return await run_in_threadpool(
                self.s3_client.generate_presigned_url,
                "put_object",
                Params={"Bucket": self.bucket_name, "Key": key, "ContentType": content_type},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(message="Failed to generate upload URL", error=str(e))

    async def generate_download_url(self, key: str, file_name: str, expires_in: int) -> str:
        """
        Presigned GET URL that downloads under the original file name.

        Raises:
            StorageError: If the URL cannot be generated
        """
        try:
            return await run_in_threadpool(
                self.s3_client.generate_presigned_url,
                "get_object",
                Params={
                    "Bucket": self.bucket_name,
                    "Key": key,
                    "ResponseContentDisposition": f'attachment; filename="{file_name}"',
                },
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(message="Failed to generate download URL", error=str(e))

    async def delete_object(self, key: str) -> None:
        """
        Delete one object.

        Raises:
            StorageError: If storage refuses or cannot be reached
        """
        try:
            await run_in_threadpool(self.s3_client.delete_object, Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(message="Failed to delete file from storage", error=str(e))
        logger.info(f"Deleted storage object {key}")


# Module-level singleton
_storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """
    Get or create the global storage service.

    Returns:
        StorageService instance
    """
    global _storage_service

    if _storage_service is None:
        _storage_service = StorageService()

    return _storage_service
