from minio import Minio
from minio.error import S3Error
from typing import Optional, BinaryIO
import logging

from starlette.concurrency import run_in_threadpool

from chatline.core.config import settings
from chatline.utils.exceptions import StorageError

logger = logging.getLogger(__name__)


class MinioClient:
    def __init__(self):
        self.client = Minio(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ROOT_USER,
            secret_key=settings.MINIO_ROOT_PASSWORD,
            secure=settings.MINIO_SECURE
        )
        self.bucket_name = settings.MINIO_BUCKET_NAME

    async def ensure_bucket_exists(self):
        """Ensure the bucket exists, create if not"""
        try:
            if not await run_in_threadpool(self.client.bucket_exists, self.bucket_name):
                await run_in_threadpool(self.client.make_bucket, self.bucket_name)
                logger.info(f"Created bucket {self.bucket_name}")
        except S3Error as e:
            raise StorageError("ensure bucket exists", e) from e

    async def upload_file(
        self,
        file_data: BinaryIO,
        object_name: str,
        content_type: str = "application/octet-stream",
        metadata: Optional[dict] = None
    ) -> str:
        """Upload a file to MinIO"""
        try:
            file_data.seek(0, 2)
            file_size = file_data.tell()
            file_data.seek(0)

            await run_in_threadpool(
                self.client.put_object,
                self.bucket_name,
                object_name,
                file_data,
                file_size,
                content_type=content_type,
                metadata=metadata or {}
            )
            return object_name
        except S3Error as e:
            raise StorageError("upload image", e) from e

    async def delete_file(self, object_name: str) -> bool:
        """Delete a file from MinIO"""
        try:
            await run_in_threadpool(self.client.remove_object, self.bucket_name, object_name)
            return True
        except S3Error as e:
            raise StorageError("delete image", e) from e

    def public_url(self, object_name: str) -> str:
        return f"{settings.MINIO_PUBLIC_URL.rstrip('/')}/{self.bucket_name}/{object_name}"

    def object_name_from_url(self, url: str) -> Optional[str]:
        """Map a public URL produced by ``public_url`` back to its object name"""
        prefix = f"{settings.MINIO_PUBLIC_URL.rstrip('/')}/{self.bucket_name}/"
        if url.startswith(prefix):
            return url[len(prefix):]
        return None


# Global MinIO client instance
minio_client = MinioClient()
