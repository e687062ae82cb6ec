"""Container lifecycle: atomic creation and two-phase reclamation.

Creation stages every file in the blob store before the metadata record is
written, so a container is either complete or never visible. Reclamation
deletes blobs first and the metadata record last; the metadata delete is the
commit point, and every step tolerates "already gone", so a crashed or
duplicated reclaim can simply run again.

A blob that cannot be deleted is logged and left behind rather than keeping
an expired container record alive.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Sequence

from sharebox.config import Settings
from sharebox.errors import BlobStoreError, ReclaimError, UploadError, ValidationError
from sharebox.models import Container, StoredFile
from sharebox.models.base import utcnow
from sharebox.models.container import clean_base_name, file_extension
from sharebox.services.blob_store import (
    STORED_CATEGORIES,
    BlobStore,
    ContentCategory,
    DeleteOutcome,
    StoredBlob,
    classify_upload,
)
from sharebox.services.repository import ContainerRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadSource:
    """One incoming file, already staged on local disk."""
    name: str
    path: Path
    size: int


@dataclass(frozen=True)
class BlobReclaim:
    storage_key: str | None
    category: str | None
    outcome: DeleteOutcome


@dataclass
class ReclaimReport:
    public_id: str
    blobs: list[BlobReclaim] = field(default_factory=list)
    metadata_deleted: bool = False

    def _with(self, outcome: DeleteOutcome) -> list[BlobReclaim]:
        return [b for b in self.blobs if b.outcome == outcome]

    @property
    def deleted(self) -> list[BlobReclaim]:
        return self._with(DeleteOutcome.DELETED)

    @property
    def not_found(self) -> list[BlobReclaim]:
        return self._with(DeleteOutcome.NOT_FOUND)

    @property
    def leaked(self) -> list[BlobReclaim]:
        return self._with(DeleteOutcome.FAILED)


def parse_duration(value) -> int:
    """Expiry duration in whole minutes. Raises ValidationError unless it is a positive integer."""
    if isinstance(value, bool) or value is None:
        raise ValidationError("Expiry duration is required")
    if isinstance(value, int):
        minutes = value
    else:
        try:
            minutes = int(str(value).strip())
        except ValueError:
            raise ValidationError(f"Expiry duration must be a whole number of minutes, got {value!r}")
    if minutes <= 0:
        raise ValidationError("Expiry duration must be a positive number of minutes")
    try:
        timedelta(minutes=minutes)
    except OverflowError:
        raise ValidationError(f"Expiry duration of {minutes} minutes is too long")
    return minutes


class ContainerLifecycle:
    def __init__(
        self,
        repository: ContainerRepository,
        blob_store: BlobStore,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.blob_store = blob_store
        self.settings = settings
        self.clock = clock

    def share_link(self, container: Container) -> str:
        return f"{self.settings.PUBLIC_BASE_URL.rstrip('/')}/share/{container.public_id}"

    # ── Creation ─────────────────────────────────────────────────

    async def create(self, display_name: str | None, duration_minutes, files: Sequence[UploadSource]) -> Container:
        if not files:
            raise ValidationError("No files uploaded")
        minutes = parse_duration(duration_minutes)
        lifetime = timedelta(minutes=minutes)
        try:
            self.clock() + lifetime
        except OverflowError:
            raise ValidationError(f"Expiry duration of {minutes} minutes is too long")

        stored = await self._upload_all(files)
        try:
            container = self._build_container(display_name, lifetime, files, stored)
            await self.repository.insert(container)
        except Exception:
            logger.error("Failed to record new container, removing its blobs")
            await self._cleanup(stored)
            raise
        logger.info(f"Created container {container.public_id} with {len(stored)} file(s), expires {container.expires_at}")
        return container

    def _build_container(self, display_name, lifetime: timedelta, files: Sequence[UploadSource], stored: Sequence[StoredBlob]) -> Container:
        created_at = self.clock()
        container = Container(
            public_id=uuid.uuid4().hex,
            display_name=(display_name or "").strip() or self.settings.DEFAULT_CONTAINER_NAME,
            created_at=created_at,
            expires_at=created_at + lifetime,
        )
        for position, (source, blob) in enumerate(zip(files, stored)):
            container.files.append(
                StoredFile(
                    id=uuid.uuid4(),
                    position=position,
                    original_name=source.name,
                    storage_key=blob.storage_key,
                    url=blob.url,
                    size_bytes=source.size,
                    content_category=blob.category.value,
                    clean_name=clean_base_name(source.name),
                    extension=file_extension(source.name),
                )
            )

        return container

    async def _upload_all(self, files: Sequence[UploadSource]) -> list[StoredBlob]:
        """Upload every file with bounded concurrency. All-or-nothing."""
        semaphore = asyncio.Semaphore(max(1, self.settings.UPLOAD_CONCURRENCY))

        async def _upload_one(source: UploadSource) -> StoredBlob:
            async with semaphore:
                return await self.blob_store.put(source.path, source.name, classify_upload(source.name), source.size)

        results = await asyncio.gather(*(_upload_one(f) for f in files), return_exceptions=True)

        stored = [r for r in results if isinstance(r, StoredBlob)]
        failures = [(f, r) for f, r in zip(files, results) if isinstance(r, BaseException)]
        if not failures:
            return stored

        for source, error in failures:
            logger.error(f"Upload of {source.name!r} failed: {error}")
        await self._cleanup(stored)
        first_name, first_error = failures[0]
        raise UploadError(f"Failed to upload {first_name}: {first_error}") from first_error

    async def _cleanup(self, stored: Sequence[StoredBlob]) -> None:
        for blob in stored:
            try:
                await self.blob_store.delete(blob.storage_key, blob.category)
                logger.info(f"Cleaned up partial upload {blob.category.value}/{blob.storage_key}")
            except Exception as e:
                logger.warning(f"Cleanup of {blob.category.value}/{blob.storage_key} failed, blob leaked: {e}")

    # ── Reclamation ──────────────────────────────────────────────

    async def reclaim(self, container: Container) -> ReclaimReport:
        """Delete every blob of the container, then its metadata record.

        Blob failures are recorded in the report, not raised. Raises
        ReclaimError only when the metadata delete itself fails.
        """
        report = ReclaimReport(public_id=container.public_id)
        for record in container.files:
            report.blobs.append(await self._reclaim_blob(record))

        try:
            report.metadata_deleted = await self.repository.delete_by_internal_id(container.id)
        except Exception as e:
            raise ReclaimError(f"Failed to delete metadata for container {container.public_id}: {e}") from e

        if report.leaked:
            keys = ", ".join(str(b.storage_key) for b in report.leaked)
            logger.warning(f"Reclaimed container {container.public_id} but leaked {len(report.leaked)} blob(s): {keys}")
        elif not report.metadata_deleted:
            logger.info(f"Container {container.public_id} was already reclaimed")
        else:
            logger.info(
                f"Reclaimed container {container.public_id}: "
                f"{len(report.deleted)} deleted, {len(report.not_found)} already gone"
            )
        return report

    async def _reclaim_blob(self, record: StoredFile) -> BlobReclaim:
        if not record.storage_key:
            logger.warning(f"File {record.id} of {record.original_name!r} has no storage key, nothing to delete")
            return BlobReclaim(None, record.content_category, DeleteOutcome.NOT_FOUND)

        category = _known_category(record.content_category)
        if category is not None:
            outcome = await self._delete(record.storage_key, category)
            if outcome == DeleteOutcome.NOT_FOUND:
                logger.info(f"Blob {category.value}/{record.storage_key} already gone")
            return BlobReclaim(record.storage_key, category.value, outcome)

        # Unknown category: try each one. NOT_FOUND on the wrong guesses is expected.
        outcomes = [await self._delete(record.storage_key, c) for c in STORED_CATEGORIES]
        if DeleteOutcome.DELETED in outcomes:
            outcome = DeleteOutcome.DELETED
        elif DeleteOutcome.FAILED in outcomes:
            outcome = DeleteOutcome.FAILED
        else:
            outcome = DeleteOutcome.NOT_FOUND
        logger.debug(f"Category sweep for {record.storage_key}: {[o.value for o in outcomes]}")
        return BlobReclaim(record.storage_key, None, outcome)

    async def _delete(self, storage_key: str, category: ContentCategory) -> DeleteOutcome:
        try:
            return await self.blob_store.delete(storage_key, category)
        except BlobStoreError as e:
            logger.warning(f"Failed to delete blob {category.value}/{storage_key}: {e}")
        except Exception as e:
            logger.warning(f"Unexpected error deleting blob {category.value}/{storage_key}: {type(e).__name__}: {e}")
        return DeleteOutcome.FAILED


def _known_category(value: str | None) -> ContentCategory | None:
    try:
        category = ContentCategory(value)
    except ValueError:
        return None
    return category if category in STORED_CATEGORIES else None
