"""Blob storage service for MinIO/S3."""
import io
from minio import Minio
from minio.error import S3Error
from shared.config import config
from shared.exceptions import StoreUnavailableError
import logging

logger = logging.getLogger(__name__)


def blob_path_for(owner_id: str, document_id, filename: str) -> str:
    """Object path for an uploaded file."""
    return f"{owner_id}/{document_id}/{filename}"


class StorageService:
    """Service for interacting with object storage; owns blob durability."""

    def __init__(self, client: Minio = None, bucket: str = None):
        self.client = client or Minio(
            config.MINIO_ENDPOINT,
            access_key=config.MINIO_ACCESS_KEY,
            secret_key=config.MINIO_SECRET_KEY,
            secure=config.MINIO_SECURE
        )
        self.bucket = bucket or config.MINIO_BUCKET
        self._ensure_bucket_exists()

    def _ensure_bucket_exists(self):
        """Ensure the bucket exists."""
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
                logger.info(f"Created bucket: {self.bucket}")
        except S3Error as e:
            logger.error(f"Error ensuring bucket exists: {e}")
            raise StoreUnavailableError("Blob store unavailable", str(e))

    def upload_file(self, file_data: bytes, object_name: str, content_type: str = "application/octet-stream") -> str:
        """Upload a file to object storage.

        Args:
            file_data: File data as bytes
            object_name: Object name (path) in storage
            content_type: Content type of the file

        Returns:
            Object path
        """
        try:
            self.client.put_object(
                self.bucket,
                object_name,
                io.BytesIO(file_data),
                length=len(file_data),
                content_type=content_type
            )
            return object_name
        except S3Error as e:
            logger.error(f"Error uploading file {object_name}: {e}")
            raise StoreUnavailableError(f"Could not store {object_name}", str(e))

    def delete_file(self, object_name: str):
        """Delete a file from object storage.

        Args:
            object_name: Object name (path) in storage
        """
        try:
            self.client.remove_object(self.bucket, object_name)
        except S3Error as e:
            logger.error(f"Error deleting file {object_name}: {e}")
            raise StoreUnavailableError(f"Could not delete {object_name}", str(e))

    def delete_prefix(self, prefix: str) -> int:
        """Delete all objects with a given prefix.

        Args:
            prefix: Object prefix (e.g., "owner_id/document_id/")

        Returns:
            Number of objects deleted
        """
        try:
            deleted = 0
            for obj in self.client.list_objects(self.bucket, prefix=prefix, recursive=True):
                self.client.remove_object(self.bucket, obj.object_name)
                deleted += 1
                logger.info(f"Deleted object: {obj.object_name}")
            return deleted
        except S3Error as e:
            logger.error(f"Error deleting prefix {prefix}: {e}")
            raise StoreUnavailableError(f"Could not delete {prefix}", str(e))
