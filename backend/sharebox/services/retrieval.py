"""Retrieval service - serves container contents to link holders.

Expiry is checked on every read, so a container the sweeper has not reached
yet is already inaccessible.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from sharebox.errors import CorruptRecordError, ExpiredError, NotFoundError
from sharebox.models import Container, StoredFile
from sharebox.models.base import as_utc, utcnow
from sharebox.services.blob_store import BlobStore, ContentCategory

logger = logging.getLogger(__name__)


@dataclass
class FileView:
    id: uuid.UUID
    original_name: str
    size_bytes: int
    download_name: str
    download_url: str | None
    corrupt: bool = False


@dataclass
class ContainerView:
    public_id: str
    display_name: str
    created_at: datetime
    expires_at: datetime
    files: list[FileView] = field(default_factory=list)


def download_filename(record: StoredFile, when: datetime) -> str:
    """`<clean name>-<MM-DD-YYYY><ext>`, dated at retrieval time."""
    return f"{record.display_base_name}-{when.strftime('%m-%d-%Y')}{record.display_extension}"


def is_expired(container: Container, now: datetime) -> bool:
    return as_utc(now) > as_utc(container.expires_at)


class RetrievalService:
    def __init__(self, repository, blob_store: BlobStore, clock: Callable[[], datetime] = utcnow):
        self.repository = repository
        self.blob_store = blob_store
        self.clock = clock

    async def _download_url(self, record: StoredFile, filename: str) -> str:
        category = None
        if record.content_category:
            try:
                category = ContentCategory(record.content_category)
            except ValueError:
                pass
        return await self.blob_store.attachment_url(record.storage_key, category, record.url, filename)

    async def resolve(self, public_id: str) -> ContainerView:
        container = await self.repository.find_by_public_id(public_id)
        if container is None:
            raise NotFoundError()
        now = self.clock()
        if is_expired(container, now):
            raise ExpiredError()

        view = ContainerView(
            public_id=container.public_id,
            display_name=container.display_name,
            created_at=as_utc(container.created_at),
            expires_at=as_utc(container.expires_at),
        )
        for record in container.files:
            name = download_filename(record, now)
            if record.is_corrupt:
                logger.warning(f"File {record.id} in container {public_id} has no storage URL")
                view.files.append(FileView(record.id, record.original_name, record.size_bytes or 0, name, None, corrupt=True))
                continue
            view.files.append(
                FileView(record.id, record.original_name, record.size_bytes or 0, name, await self._download_url(record, name))
            )
        return view

    async def resolve_single_file(self, file_id) -> str:
        """Redirect target for one file. NotFound, Expired or CorruptRecord otherwise."""
        try:
            file_id = uuid.UUID(str(file_id))
        except ValueError:
            raise NotFoundError("File not found")
        container = await self.repository.find_by_file_id(file_id)
        if container is None:
            raise NotFoundError("File not found")
        record = next((f for f in container.files if f.id == file_id), None)
        if record is None:
            raise NotFoundError("File not found")
        now = self.clock()
        if is_expired(container, now):
            raise ExpiredError()
        if record.is_corrupt:
            raise CorruptRecordError()
        return await self._download_url(record, download_filename(record, now))
