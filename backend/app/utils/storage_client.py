import asyncio
import uuid
from pathlib import PurePosixPath
from typing import BinaryIO, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.exceptions import StorageUploadError
from app.core.logging_config import logger


class StorageClient:
    """
    S3 storage client for verification documents.

    Any S3-compatible store (MinIO, R2, ...) works by setting
    STORAGE_ENDPOINT_URL. The boto3 client is created on first use.
    """

    def __init__(self, bucket_name: Optional[str] = None, client=None):
        self.bucket_name = bucket_name or settings.STORAGE_BUCKET
        self._client = client

    @property
    def client(self):
        if self._client is None:
            kwargs = {"region_name": settings.AWS_REGION}
            if settings.STORAGE_ENDPOINT_URL:
                kwargs["endpoint_url"] = settings.STORAGE_ENDPOINT_URL
            if settings.AWS_ACCESS_KEY_ID:
                kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
                kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
            self._client = boto3.client("s3", **kwargs)
        return self._client

    def object_key(self, folder: str, filename: Optional[str]) -> str:
        suffix = PurePosixPath(filename or "").suffix.lower()
        return f"{folder.strip('/')}/{uuid.uuid4().hex}{suffix}"

    def upload_fileobj(
        self,
        file_obj: BinaryIO,
        object_name: str,
        content_type: Optional[str] = None
    ) -> str:
        """
        Upload file object to storage

        Returns:
            URL of uploaded file
        """
        extra_args = {}
        if content_type:
            extra_args['ContentType'] = content_type

        try:
            self.client.upload_fileobj(
                file_obj,
                self.bucket_name,
                object_name,
                ExtraArgs=extra_args
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error uploading file object: {e}")
            raise StorageUploadError(object_name, str(e))

        logger.info(f"Uploaded file object: {object_name}")
        return self.get_file_url(object_name)

    def delete_file(self, object_name: str) -> bool:
        """Delete file from storage"""
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=object_name)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error deleting file: {e}")
            return False
        logger.info(f"Deleted file: {object_name}")
        return True

    def get_file_url(self, object_name: str) -> str:
        """Public URL of an object"""
        if settings.STORAGE_PUBLIC_BASE_URL:
            return f"{settings.STORAGE_PUBLIC_BASE_URL.rstrip('/')}/{object_name}"
        if settings.STORAGE_ENDPOINT_URL:
            return f"{settings.STORAGE_ENDPOINT_URL.rstrip('/')}/{self.bucket_name}/{object_name}"
        return f"https://{self.bucket_name}.s3.{settings.AWS_REGION}.amazonaws.com/{object_name}"

    async def upload(
        self,
        file_obj: BinaryIO,
        folder: str,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> Dict[str, str]:
        """Upload without blocking the event loop; returns {"url", "public_id"}"""
        key = self.object_key(folder, filename)
        url = await asyncio.to_thread(self.upload_fileobj, file_obj, key, content_type)
        return {"url": url, "public_id": key}


_storage_client: Optional[StorageClient] = None


def get_storage_client() -> StorageClient:
    """FastAPI dependency / accessor for the shared client"""
    global _storage_client
    if _storage_client is None:
        _storage_client = StorageClient()
    return _storage_client
