"""Container repository - durable mapping from public id to container metadata.

Every call opens its own session, so the repository can be shared by
request handlers and the sweeper. Returned containers have their files
loaded and stay usable after the session closes.
"""
import logging
import uuid
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sharebox.models import Container, StoredFile

logger = logging.getLogger(__name__)


class ContainerRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def insert(self, container: Container) -> Container:
        async with self.session_factory() as db:
            db.add(container)
            await db.commit()
            await db.refresh(container, attribute_names=["files"])
        return container

    async def find_by_public_id(self, public_id: str) -> Container | None:
        async with self.session_factory() as db:
            result = await db.execute(select(Container).where(Container.public_id == public_id))
            return result.scalar_one_or_none()

    async def find_by_file_id(self, file_id) -> Container | None:
        """Owning container of a file record, or None for unknown or malformed ids."""
        if not isinstance(file_id, uuid.UUID):
            try:
                file_id = uuid.UUID(str(file_id))
            except ValueError:
                return None
        async with self.session_factory() as db:
            result = await db.execute(
                select(Container).join(StoredFile, StoredFile.container_id == Container.id).where(StoredFile.id == file_id)
            )
            return result.scalar_one_or_none()

    async def find_expired(self, before: datetime) -> list[Container]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Container).where(Container.expires_at < before).order_by(Container.expires_at)
            )
            return list(result.scalars().all())

    async def delete_by_internal_id(self, container_id: uuid.UUID) -> bool:
        """Delete a container and its file rows. Returns False if it was already gone."""
        async with self.session_factory() as db:
            await db.execute(delete(StoredFile).where(StoredFile.container_id == container_id))
            result = await db.execute(delete(Container).where(Container.id == container_id))
            deleted = result.rowcount > 0
            await db.commit()
        return deleted

    async def count(self) -> int:
        async with self.session_factory() as db:
            result = await db.execute(select(func.count()).select_from(Container))
            return result.scalar_one()
