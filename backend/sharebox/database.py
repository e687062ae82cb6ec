"""Async SQLAlchemy engine and session factory.

The engine is owned by a `Database` handle created by the application
lifespan and torn down with it. Routes get a session through `get_db`:

    from sharebox.database import get_db

    @router.get("/items")
    async def list_items(db: AsyncSession = Depends(get_db)):
        result = await db.execute(select(Item))
        return result.scalars().all()
"""
import logging

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from sharebox.models import Base

logger = logging.getLogger(__name__)


class Database:
    """Owns one async engine and its session factory."""

    def __init__(self, url: str):
        self.url = url
        engine_kwargs = {"echo": False, "pool_pre_ping": True}
        if not url.startswith("sqlite"):
            engine_kwargs.update(pool_size=10, max_overflow=20)
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def connect(self) -> None:
        """Verify connectivity and create tables. Raises if the database is unreachable."""
        async with self.engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database connected")

    async def ping(self) -> None:
        async with self.session_factory() as session:
            await session.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_db(request: Request):
    """FastAPI dependency that yields an async DB session."""
    async with request.app.state.database.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
