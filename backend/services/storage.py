"""
services/storage.py — Object storage for uploaded source files.

Two backends share one interface: a local folder served by the app under
/static/uploads (default) and an S3 bucket (S3_ENABLED=true).  Both refuse to
overwrite an existing key and only accept the bucket's allowed MIME types.
"""

import os
import re
import time
from typing import List

from config import Config
from logging_config import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


class StorageError(Exception):
    pass


def sanitize_filename(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name)


def build_object_key(user_id, project_id: str, filename: str, timestamp_ms: int | None = None) -> str:
    """{user}/{project}/{epoch_ms}_{sanitized name} — unique per upload."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{user_id}/{project_id}/{timestamp_ms}_{sanitize_filename(filename)}"


class LocalStorage:
    def __init__(self, root: str, bucket: str, base_url: str):
        self.root = root
        self.bucket = bucket
        self.base_url = base_url

    def _bucket_dir(self) -> str:
        return os.path.join(self.root, self.bucket)

    def ensure_bucket(self) -> bool:
        existed = os.path.isdir(self._bucket_dir())
        os.makedirs(self._bucket_dir(), exist_ok=True)
        return existed

    def list_buckets(self) -> List[str]:
        if not os.path.isdir(self.root):
            return []
        return sorted(
            d for d in os.listdir(self.root) if os.path.isdir(os.path.join(self.root, d))
        )

    def put(self, key: str, data: bytes, content_type: str) -> None:
        path = os.path.join(self._bucket_dir(), *key.split("/"))
        if os.path.exists(path):
            raise StorageError("The resource already exists")
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/static/uploads/{self.bucket}/{key}"


class S3Storage:
    def __init__(self, bucket: str, region: str):
        self.bucket = bucket
        self.region = region
        self._client = None

    @property
    def client(self):
        if self._client is None:
            import boto3

            self._client = boto3.client(
                "s3",
                aws_access_key_id=Config.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=Config.AWS_SECRET_ACCESS_KEY,
                region_name=self.region,
            )
        return self._client

    def ensure_bucket(self) -> bool:
        from botocore.exceptions import BotoCoreError, ClientError

        kwargs = {"Bucket": self.bucket}
        if self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self.client.create_bucket(**kwargs)
            return False
        except BotoCoreError as exc:
            raise StorageError(str(exc)) from exc
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                return True
            raise StorageError(str(exc)) from exc

    def list_buckets(self) -> List[str]:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = self.client.list_buckets()
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(str(exc)) from exc
        return [b["Name"] for b in response.get("Buckets", [])]

    def put(self, key: str, data: bytes, content_type: str) -> None:
        from botocore.exceptions import ClientError

        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") not in ("404", "NoSuchKey", "NotFound"):
                raise StorageError(str(exc)) from exc
        else:
            raise StorageError("The resource already exists")

        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except ClientError as exc:
            raise StorageError(str(exc)) from exc

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"


class StorageService:
    """Upload gate in front of the configured backend."""

    def __init__(self, backend=None):
        if backend is None:
            if Config.S3_ENABLED:
                backend = S3Storage(Config.STORAGE_BUCKET, Config.AWS_S3_REGION)
            else:
                backend = LocalStorage(Config.UPLOAD_FOLDER, Config.STORAGE_BUCKET, Config.PUBLIC_BASE_URL)
        self.backend = backend
        self.allowed_mime_types = Config.ALLOWED_MIME_TYPES
        self.max_bytes = Config.MAX_UPLOAD_BYTES

    @property
    def kind(self) -> str:
        return "s3" if isinstance(self.backend, S3Storage) else "local"

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        """Store *data* under *key* and return its public URL."""
        if content_type not in self.allowed_mime_types:
            raise StorageError(f"mime type {content_type or 'unknown'} is not supported")
        if len(data) > self.max_bytes:
            raise StorageError("The object exceeded the maximum allowed size")
        self.backend.put(key, data, content_type)
        logger.info("storage.uploaded", backend=self.kind, key=key, size=len(data))
        return self.backend.public_url(key)

    def public_url(self, key: str) -> str:
        return self.backend.public_url(key)

    def ensure_bucket(self) -> bool:
        return self.backend.ensure_bucket()

    def list_buckets(self) -> List[str]:
        return self.backend.list_buckets()
