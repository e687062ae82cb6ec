"""
Sharebox - Test Configuration and Fixtures
"""
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from sharebox.config import Settings
from sharebox.database import Database
from sharebox.errors import BlobStoreError
from sharebox.services.blob_store import BlobStore, ContentCategory, DeleteOutcome, StoredBlob
from sharebox.services.lifecycle import ContainerLifecycle, UploadSource
from sharebox.services.repository import ContainerRepository
from sharebox.services.retrieval import RetrievalService
from sharebox.services.sweeper import ExpirySweeper

START = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


class FrozenClock:
    """Controllable clock passed to services instead of datetime.now."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeBlobStore(BlobStore):
    """In-memory blob store that records every call."""

    def __init__(self):
        super().__init__("sharebox")
        self.objects: dict[tuple[str, str], int] = {}
        self.puts: list[str] = []
        self.deletes: list[tuple[str, str, DeleteOutcome]] = []
        self.fail_uploads: set[str] = set()
        self.fail_deletes: set[str] = set()

    async def put(self, source: Path, filename: str, category_hint: ContentCategory, size: int) -> StoredBlob:
        self.puts.append(filename)
        if filename in self.fail_uploads:
            raise BlobStoreError(f"upload rejected: {filename}")
        category = self.resolve_category(filename, category_hint)
        storage_key = self.new_key(filename)
        self.objects[(category.value, storage_key)] = size
        return StoredBlob(storage_key, f"https://blobs.test/{category.value}/{storage_key}", category)

    async def delete(self, storage_key: str, category: ContentCategory) -> DeleteOutcome:
        if storage_key in self.fail_deletes:
            self.deletes.append((storage_key, category.value, DeleteOutcome.FAILED))
            raise BlobStoreError(f"delete rejected: {storage_key}")
        if self.objects.pop((category.value, storage_key), None) is None:
            outcome = DeleteOutcome.NOT_FOUND
        else:
            outcome = DeleteOutcome.DELETED
        self.deletes.append((storage_key, category.value, outcome))
        return outcome


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'sharebox.db'}",
        PUBLIC_BASE_URL="http://testserver",
        BLOB_STORAGE_TYPE="local",
        BLOB_STORAGE_PATH=str(tmp_path / "blobs"),
        UPLOAD_STAGING_DIR=str(tmp_path / "uploads"),
        SWEEP_ENABLED=False,
    )


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
async def database(settings):
    db = Database(settings.DATABASE_URL)
    await db.connect()
    yield db
    await db.dispose()


@pytest.fixture
def repository(database) -> ContainerRepository:
    return ContainerRepository(database.session_factory)


@pytest.fixture
def lifecycle(repository, blob_store, settings, clock) -> ContainerLifecycle:
    return ContainerLifecycle(repository, blob_store, settings, clock=clock)


@pytest.fixture
def retrieval(repository, blob_store, clock) -> RetrievalService:
    return RetrievalService(repository, blob_store, clock=clock)


@pytest.fixture
def sweeper(repository, lifecycle, clock) -> ExpirySweeper:
    return ExpirySweeper(repository, lifecycle, interval_seconds=0.01, clock=clock)


@pytest.fixture
def make_source(tmp_path):
    """Write a staged file and return its UploadSource."""
    staged = tmp_path / "staged"
    staged.mkdir(exist_ok=True)

    def _make(name: str, size: int = 16) -> UploadSource:
        path = staged / f"{len(list(staged.iterdir()))}-{name}"
        path.write_bytes(b"x" * size)
        return UploadSource(name=name, path=path, size=size)

    return _make
