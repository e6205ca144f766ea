import logging
from io import BytesIO
from typing import List, Optional

from minio import Minio, S3Error
from urllib3.exceptions import HTTPError

from imagemax.core.config import MINIO_BUCKET, minio_client, settings
from imagemax.core.errors import StorageError

logger = logging.getLogger(__name__)


class ObjectStorage:
    """Public-read bucket holding originals and results under {user_id}/{tool}/..."""

    def __init__(self, client: Minio, bucket: str, public_url: str):
        self.client = client
        self.bucket = bucket
        self.public_base = f"{public_url.rstrip('/')}/{bucket}/"

    def ensure_bucket(self):
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
        except S3Error as err:
            logger.error("MinIO error: %s", err)

    def public_url(self, key: str) -> str:
        return self.public_base + key

    def key_from_url(self, url: Optional[str]) -> Optional[str]:
        if not url:
            return None
        if url.startswith(self.public_base):
            return url[len(self.public_base):]
        return url

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        try:
            self.client.put_object(
                self.bucket,
                key,
                data=BytesIO(data),
                length=len(data),
                content_type=content_type,
                metadata={"Cache-Control": "max-age=3600"},
            )
        except S3Error as err:
            raise StorageError(details=str(err))
        return self.public_url(key)

    def remove(self, keys: List[str]) -> List[str]:
        errors = []
        for key in keys:
            try:
                self.client.remove_object(self.bucket, key)
            except (S3Error, HTTPError) as err:
                logger.warning("Failed to remove %s: %s", key, err)
                errors.append(f"{key}: {err}")
        return errors


storage = ObjectStorage(minio_client, MINIO_BUCKET, settings.STORAGE_PUBLIC_URL)


def get_storage() -> ObjectStorage:
    return storage
