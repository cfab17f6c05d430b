from typing import Optional
import io
import logging
import mimetypes
import os
import uuid

from chatline.core.config import settings
from chatline.core.minio import MinioClient, minio_client
from chatline.utils.exceptions import StorageError, ValidationError, gateway_call

logger = logging.getLogger(__name__)


class StorageService:
    """Uploads profile images to object storage and hands back public URLs"""

    def __init__(self, minio: Optional[MinioClient] = None):
        self.minio_client = minio or minio_client

    def _generate_object_name(self, filename: str, user_id: str) -> str:
        """Generate unique object name for MinIO storage"""
        file_extension = os.path.splitext(filename)[1].lower()
        return f"avatars/{user_id}/{uuid.uuid4()}{file_extension}"

    def validate_image(self, content: bytes, filename: str) -> None:
        file_extension = os.path.splitext(filename or "")[1].lower()
        if file_extension not in settings.ALLOWED_IMAGE_EXTENSIONS:
            raise ValidationError(f"Unsupported image type: {file_extension or 'unknown'}")
        if not content:
            raise ValidationError("Image file is empty")
        if len(content) > settings.MAX_IMAGE_SIZE_BYTES:
            raise ValidationError(f"Image must be smaller than {settings.MAX_IMAGE_SIZE_MB} MB")

    @gateway_call("upload image", StorageError)
    async def upload_image(
        self,
        content: bytes,
        filename: str,
        user_id: str,
        content_type: Optional[str] = None
    ) -> str:
        """Store an image and return its public URL"""
        self.validate_image(content, filename)
        object_name = self._generate_object_name(filename, user_id)
        content_type = content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"

        await self.minio_client.upload_file(
            io.BytesIO(content),
            object_name,
            content_type,
            metadata={"original_filename": filename, "user_id": user_id}
        )
        logger.info(f"Uploaded image {object_name} for user {user_id}")
        return self.minio_client.public_url(object_name)

    @gateway_call("delete image", StorageError)
    async def delete_image(self, url: str) -> bool:
        """Delete an image previously returned by ``upload_image``; foreign URLs are ignored"""
        object_name = self.minio_client.object_name_from_url(url or "")
        if not object_name:
            return False
        return await self.minio_client.delete_file(object_name)
