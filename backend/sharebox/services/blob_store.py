"""Blob storage abstraction. Local filesystem for dev, S3/MinIO for production.

Objects are partitioned by content category: a blob lives at
`<category>/<storage_key>`, so a storage key alone does not identify the
object. Records written before the category was tracked are deleted by
probing every category.
"""
import asyncio
import logging
import mimetypes
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from urllib.parse import quote, urlencode

import aiofiles
import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from sharebox.config import Settings
from sharebox.errors import BlobStoreError

logger = logging.getLogger(__name__)


class ContentCategory(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    RAW = "raw"
    AUTO = "auto"  # upload hint only, never stored


STORED_CATEGORIES = (ContentCategory.IMAGE, ContentCategory.VIDEO, ContentCategory.RAW)


class DeleteOutcome(str, Enum):
    DELETED = "deleted"
    NOT_FOUND = "not_found"
    FAILED = "failed"


# Installers, packages, disk images and archives are stored as opaque bytes.
RAW_EXTENSIONS = frozenset({
    ".exe", ".msi", ".dmg", ".pkg", ".iso", ".img", ".apk", ".deb", ".rpm",
    ".zip", ".rar", ".7z", ".tar", ".gz", ".tgz", ".bz2", ".xz", ".jar", ".bin",
})


def classify_upload(filename: str) -> ContentCategory:
    """Category hint for an upload, chosen from its extension."""
    if Path(filename or "").suffix.lower() in RAW_EXTENSIONS:
        return ContentCategory.RAW
    return ContentCategory.AUTO


def detect_category(filename: str) -> ContentCategory:
    """Resolve an AUTO hint from the filename's MIME type."""
    mime, _ = mimetypes.guess_type(filename or "")
    if mime:
        if mime.startswith("image/"):
            return ContentCategory.IMAGE
        if mime.startswith(("video/", "audio/")):
            return ContentCategory.VIDEO
    return ContentCategory.RAW


def content_disposition(filename: str) -> str:
    return f"attachment; filename=\"{filename}\"; filename*=UTF-8''{quote(filename)}"


@dataclass(frozen=True)
class StoredBlob:
    storage_key: str
    url: str
    category: ContentCategory


class BlobStore(ABC):
    """Remote object storage capability used by the lifecycle and retrieval services."""

    def __init__(self, folder: str = "sharebox"):
        self.folder = folder.strip("/")

    def new_key(self, filename: str) -> str:
        return f"{self.folder}/{uuid.uuid4().hex}{Path(filename or '').suffix.lower()}"

    def resolve_category(self, filename: str, hint: ContentCategory) -> ContentCategory:
        if hint == ContentCategory.AUTO:
            return detect_category(filename)
        return hint

    @abstractmethod
    async def put(self, source: Path, filename: str, category_hint: ContentCategory, size: int) -> StoredBlob:
        """Store the bytes at `source`. Raises BlobStoreError on failure."""

    @abstractmethod
    async def delete(self, storage_key: str, category: ContentCategory) -> DeleteOutcome:
        """Delete one object. Returns DELETED or NOT_FOUND; raises BlobStoreError on failure."""

    async def attachment_url(self, storage_key: str, category: ContentCategory | None, url: str, filename: str) -> str:
        """Download URL that asks the browser to save the object as `filename`."""
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{urlencode({'response-content-disposition': content_disposition(filename)})}"

    async def close(self) -> None:
        return None


class LocalBlobStore(BlobStore):
    """Stores blobs under a local directory; served back by the /blobs route."""

    def __init__(self, base_path: str, public_base_url: str, folder: str = "sharebox", chunk_size: int = 8 * 1024 * 1024):
        super().__init__(folder)
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")
        self.chunk_size = chunk_size

    def path_for(self, storage_key: str, category: ContentCategory) -> Path:
        root = self.base_path.resolve()
        path = (root / category.value / storage_key).resolve()
        if root not in path.parents:
            raise BlobStoreError(f"Storage key escapes blob root: {storage_key}")
        return path

    async def put(self, source: Path, filename: str, category_hint: ContentCategory, size: int) -> StoredBlob:
        category = self.resolve_category(filename, category_hint)
        storage_key = self.new_key(filename)
        target = self.path_for(storage_key, category)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(source, "rb") as src, aiofiles.open(target, "wb") as dst:
                while True:
                    chunk = await src.read(self.chunk_size)
                    if not chunk:
                        break
                    await dst.write(chunk)
        except OSError as e:
            try:
                os.remove(target)
            except FileNotFoundError:
                pass
            raise BlobStoreError(f"Failed to store {filename}: {e}") from e
        url = f"{self.public_base_url}/blobs/{category.value}/{storage_key}"
        logger.info(f"[Local-Upload] Stored {category.value}/{storage_key} ({size} bytes)")
        return StoredBlob(storage_key=storage_key, url=url, category=category)

    async def delete(self, storage_key: str, category: ContentCategory) -> DeleteOutcome:
        path = self.path_for(storage_key, category)
        try:
            os.remove(path)
        except FileNotFoundError:
            return DeleteOutcome.NOT_FOUND
        except OSError as e:
            raise BlobStoreError(f"Failed to delete {category.value}/{storage_key}: {e}") from e
        return DeleteOutcome.DELETED


class S3BlobStore(BlobStore):
    """S3 or MinIO bucket. Large files go through boto3's multipart transfer."""

    def __init__(self, settings: Settings, client=None):
        super().__init__(settings.BLOB_FOLDER)
        self.bucket = settings.S3_BUCKET
        self.url_ttl = settings.S3_URL_TTL_SECONDS
        self.transfer_config = TransferConfig(
            multipart_threshold=settings.CHUNKED_UPLOAD_THRESHOLD,
            multipart_chunksize=settings.UPLOAD_CHUNK_SIZE,
        )
        self._client = client or self._make_client(settings)
        logger.info(f"S3BlobStore initialized with bucket: {self.bucket}")

    @staticmethod
    def _make_client(settings: Settings):
        kwargs = {"region_name": settings.AWS_REGION}
        if settings.S3_ENDPOINT_URL:
            kwargs["endpoint_url"] = settings.S3_ENDPOINT_URL
            kwargs["config"] = Config(signature_version="s3v4", s3={"addressing_style": "path"})
        # Without explicit keys boto3 falls back to the IAM role
        if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
            kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
            kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
        return boto3.client("s3", **kwargs)

    @staticmethod
    def object_key(storage_key: str, category: ContentCategory) -> str:
        return f"{category.value}/{storage_key}"

    async def put(self, source: Path, filename: str, category_hint: ContentCategory, size: int) -> StoredBlob:
        category = self.resolve_category(filename, category_hint)
        storage_key = self.new_key(filename)
        key = self.object_key(storage_key, category)
        extra_args = {}
        mime, _ = mimetypes.guess_type(filename or "")
        if mime:
            extra_args["ContentType"] = mime
        try:
            await asyncio.to_thread(
                self._client.upload_file,
                str(source),
                self.bucket,
                key,
                ExtraArgs=extra_args,
                Config=self.transfer_config,
            )
        except (ClientError, BotoCoreError, OSError) as e:
            raise BlobStoreError(f"Failed to upload {filename}: {e}") from e
        url = f"{self._client.meta.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        logger.info(f"[S3-Upload] Uploaded: {key} ({size} bytes)")
        return StoredBlob(storage_key=storage_key, url=url, category=category)

    async def delete(self, storage_key: str, category: ContentCategory) -> DeleteOutcome:
        key = self.object_key(storage_key, category)
        try:
            await asyncio.to_thread(self._client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code", "") in ("404", "NoSuchKey", "NotFound"):
                return DeleteOutcome.NOT_FOUND
            raise BlobStoreError(f"Failed to check {key}: {e}") from e
        except BotoCoreError as e:
            raise BlobStoreError(f"Failed to check {key}: {e}") from e
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise BlobStoreError(f"Failed to delete {key}: {e}") from e
        return DeleteOutcome.DELETED

    async def attachment_url(self, storage_key: str, category: ContentCategory | None, url: str, filename: str) -> str:
        if category is None:
            try:
                category = await self._find_category(storage_key)
            except BlobStoreError as e:
                logger.warning(f"[S3] Category lookup for {storage_key} failed: {e}")
        if category is None:
            logger.warning(f"[S3] No object found for {storage_key} under any category, returning unsigned URL")
            return await super().attachment_url(storage_key, category, url, filename)
        return self._client.generate_presigned_url(
            "get_object",
            Params={
                "Bucket": self.bucket,
                "Key": self.object_key(storage_key, category),
                "ResponseContentDisposition": content_disposition(filename),
            },
            ExpiresIn=self.url_ttl,
        )

    async def _find_category(self, storage_key: str) -> ContentCategory | None:
        for category in STORED_CATEGORIES:
            try:
                await asyncio.to_thread(self._client.head_object, Bucket=self.bucket, Key=self.object_key(storage_key, category))
            except ClientError as e:
                if e.response.get("Error", {}).get("Code", "") in ("404", "NoSuchKey", "NotFound"):
                    continue
                raise BlobStoreError(f"Failed to check {category.value}/{storage_key}: {e}") from e
            except BotoCoreError as e:
                raise BlobStoreError(f"Failed to check {category.value}/{storage_key}: {e}") from e
            return category
        return None


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.BLOB_STORAGE_TYPE == "local":
        return LocalBlobStore(
            settings.BLOB_STORAGE_PATH,
            settings.PUBLIC_BASE_URL,
            folder=settings.BLOB_FOLDER,
            chunk_size=settings.UPLOAD_CHUNK_SIZE,
        )
    if settings.BLOB_STORAGE_TYPE == "s3":
        return S3BlobStore(settings)
    raise ValueError(f"Unknown storage type: {settings.BLOB_STORAGE_TYPE}")
