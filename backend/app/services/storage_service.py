"""
Writegy Backend - File Storage Service
========================================

What:  Upload validation and object storage for documents' source files.
How:   A Storage interface with two backends:
         - S3Storage: any S3-compatible service (AWS S3, Cloudflare R2,
           MinIO) through boto3, run in a worker thread
         - LocalStorage: files under STORAGE_ROOT written with aiofiles,
           for development and tests
Who:   DocumentService when a document is created with an attached file.

Upload Rules:
    1. Non-empty
    2. At most MAX_FILE_SIZE bytes (5MB by default)
    3. Declared content type is PDF, DOC or DOCX
    4. Filename extension is .pdf, .doc or .docx

Keys:
    {owner_id}/{uuid4}{extension}. No user-supplied text ends up in the key
    except the validated extension.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings
from app.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
ALLOWED_CONTENT_TYPES: Dict[str, str] = {
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
}

ALLOWED_EXTENSIONS = {".pdf", ".doc", ".docx"}


@dataclass
class UploadedFile:
    """An in-memory upload as received from the multipart form."""
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lower()


def validate_upload(upload: UploadedFile, max_size: Optional[int] = None) -> None:
    """
    Apply the upload rules, cheapest first.

    Raises:
        ValidationError naming the first rule that failed.
    """
    limit = max_size or settings.max_file_size

    if upload.size == 0:
        raise ValidationError(message="Uploaded file is empty", field="file")

    if upload.size > limit:
        raise ValidationError(
            message=f"File size exceeds maximum of {limit / (1024 * 1024):.0f}MB",
            field="file",
            context={"max_size": limit, "actual_size": upload.size},
        )

    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            message="Invalid file type. Only PDF, DOC, and DOCX files are allowed.",
            field="file",
            context={"content_type": content_type},
        )

    if upload.extension not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            message=(
                f"File extension '{upload.extension or '(none)'}' is not supported. "
                f"Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
            ),
            field="file",
            context={"extension": upload.extension},
        )


def build_key(suggested_name: str, prefix: Optional[str] = None) -> str:
    suffix = Path(suggested_name).suffix.lower() or ".bin"
    name = f"{uuid.uuid4()}{suffix}"
    return f"{prefix}/{name}" if prefix else name


# ══════════════════════════════════════════════════════════════════════════
# Backends
# ══════════════════════════════════════════════════════════════════════════

class Storage(ABC):
    """Object storage contract: upload returns the key the object lives under."""

    name: str = "storage"

    @abstractmethod
    async def upload(
        self,
        data: bytes,
        content_type: str,
        suggested_name: str,
        prefix: Optional[str] = None,
    ) -> str:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class LocalStorage(Storage):
    """Stores objects as files below a root directory."""

    name = "local"

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.storage_root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info("LocalStorage initialized with root=%s", self.root)

    def path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise ValidationError(message="Invalid storage key", context={"key": key})
        return path

    async def upload(
        self,
        data: bytes,
        content_type: str,
        suggested_name: str,
        prefix: Optional[str] = None,
    ) -> str:
        key = build_key(suggested_name, prefix)
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", path, str(e))
            raise StorageError(
                message="Failed to save uploaded file. Please try again.",
                context={"key": key, "os_error": str(e)},
            ) from e

        logger.info("File stored locally: %s (%d bytes)", key, len(data))
        return key

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(
                message="Failed to delete stored file",
                context={"key": key, "os_error": str(e)},
            ) from e


class S3Storage(Storage):
    """S3-compatible object storage via boto3."""

    name = "s3"

    def __init__(self, bucket: Optional[str] = None, client: Any = None):
        self.bucket = bucket or settings.s3_bucket
        self._client = client or self._build_client()

    @staticmethod
    def _build_client() -> Any:
        # R2 and MinIO need path-style addressing
        kwargs: Dict[str, Any] = {
            "region_name": settings.s3_region,
            "config": Config(
                retries={"max_attempts": 3},
                s3={"addressing_style": "path"},
            ),
        }
        if settings.s3_access_key_id and settings.s3_secret_access_key:
            kwargs["aws_access_key_id"] = settings.s3_access_key_id
            kwargs["aws_secret_access_key"] = settings.s3_secret_access_key
        if settings.s3_endpoint_url:
            kwargs["endpoint_url"] = settings.s3_endpoint_url
        try:
            return boto3.client("s3", **kwargs)
        except BotoCoreError as e:
            logger.error("S3 client setup failed: %s", str(e))
            raise StorageError(
                message="File storage is misconfigured",
                context={"error_type": type(e).__name__},
            ) from e

    async def upload(
        self,
        data: bytes,
        content_type: str,
        suggested_name: str,
        prefix: Optional[str] = None,
    ) -> str:
        key = build_key(suggested_name, prefix)
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("S3 upload to %s/%s failed: %s", self.bucket, key, str(e))
            raise StorageError(
                message="Failed to upload file to storage. Please try again.",
                context={"bucket": self.bucket, "key": key, "error_type": type(e).__name__},
            ) from e

        logger.info("File uploaded to s3://%s/%s (%d bytes)", self.bucket, key, len(data))
        return key

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(
                message="Failed to delete stored file",
                context={"bucket": self.bucket, "key": key, "error_type": type(e).__name__},
            ) from e


@lru_cache(maxsize=1)
def get_storage() -> Storage:
    """Process-wide storage backend selected by STORAGE_BACKEND."""
    if settings.storage_backend == "s3":
        return S3Storage()
    return LocalStorage()
