import os
import time
import uuid
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional
import boto3
from botocore.config import Config
from ..logger import get_logger

logger = get_logger(__name__)

ALLOWED_CONTENT_TYPES = [
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "video/mp4",
    "video/webm",
    "video/quicktime",
]
MAX_UPLOAD_BYTES = 50 * 1024 * 1024  # 50 MB
PRESIGN_EXPIRES_IN = 3600


class StorageNotConfigured(RuntimeError):
    pass


class UploadRejected(ValueError):
    pass


@dataclass
class PresignedUpload:
    upload_url: str
    file_url: str
    key: str
    expires_in: int


@dataclass
class S3Settings:
    bucket: Optional[str]
    region: str
    endpoint: Optional[str]
    access_key_id: Optional[str]
    secret_access_key: Optional[str]
    public_url: Optional[str]

    @classmethod
    def from_env(cls) -> "S3Settings":
        return cls(
            bucket=os.getenv("S3_BUCKET"),
            region=os.getenv("S3_REGION", "us-east-1"),
            endpoint=os.getenv("S3_ENDPOINT") or None,
            access_key_id=os.getenv("S3_ACCESS_KEY_ID") or None,
            secret_access_key=os.getenv("S3_SECRET_ACCESS_KEY") or None,
            public_url=(os.getenv("S3_PUBLIC_URL") or "").rstrip("/") or None,
        )


# Raises UploadRejected for unlisted types or sizes outside 1..50 MB
def validate_upload(content_type: str, file_size: int) -> None:
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise UploadRejected("Invalid content type")
    if file_size < 1 or file_size > MAX_UPLOAD_BYTES:
        raise UploadRejected("File size must be between 1 byte and 50MB")


def build_key(user_id: uuid.UUID, file_name: str) -> str:
    ext = PurePosixPath(file_name).suffix.lower()
    return f"vibes/{user_id}/{int(time.time() * 1000)}-{uuid.uuid4()}{ext}"


class StorageService:
    """Presigned PUT uploads to S3-compatible storage."""

    def __init__(self, settings: S3Settings, client=None):
        self.settings = settings
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.settings.region,
                endpoint_url=self.settings.endpoint,
                aws_access_key_id=self.settings.access_key_id,
                aws_secret_access_key=self.settings.secret_access_key,
                config=Config(signature_version="s3v4"),
            )
        return self._client

    def public_url(self, key: str) -> str:
        if self.settings.public_url:
            return f"{self.settings.public_url}/{key}"
        return f"https://{self.settings.bucket}.s3.{self.settings.region}.amazonaws.com/{key}"

    def presign_upload(self, user_id: uuid.UUID, file_name: str, content_type: str, file_size: int) -> PresignedUpload:
        if not self.settings.bucket:
            raise StorageNotConfigured("S3_BUCKET is not set")
        validate_upload(content_type, file_size)

        key = build_key(user_id, file_name)
        upload_url = self.client.generate_presigned_url(
            "put_object",
            Params={
                "Bucket": self.settings.bucket,
                "Key": key,
                "ContentType": content_type,
                "Metadata": {"user-id": str(user_id)},
            },
            ExpiresIn=PRESIGN_EXPIRES_IN,
        )
        logger.info(f"presigned upload {key} ({content_type}, {file_size} bytes)")
        return PresignedUpload(upload_url=upload_url, file_url=self.public_url(key), key=key, expires_in=PRESIGN_EXPIRES_IN)


_storage: Optional[StorageService] = None


# FastAPI dependency; tests override it with a fake client
def get_storage() -> StorageService:
    global _storage
    if _storage is None:
        _storage = StorageService(S3Settings.from_env())
    return _storage
