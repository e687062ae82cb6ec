"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from sharebox.config import Settings
from sharebox.database import Database, get_db
from sharebox.models.base import utcnow
from sharebox.services.blob_store import BlobStore, build_blob_store
from sharebox.services.lifecycle import ContainerLifecycle
from sharebox.services.repository import ContainerRepository
from sharebox.services.retrieval import RetrievalService
from sharebox.services.sweeper import ExpirySweeper

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, blob_store: BlobStore | None = None, clock=None) -> FastAPI:
    """Build the app. Database, blob store and sweeper live for the lifespan of the app."""
    settings = settings or Settings()
    clock = clock or utcnow

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Connect the database, wire services, start the sweeper."""
        database = Database(settings.DATABASE_URL)
        try:
            await database.connect()
        except Exception as e:
            logger.critical(f"Cannot connect to database: {e}")
            await database.dispose()
            raise

        store = blob_store or build_blob_store(settings)
        repository = ContainerRepository(database.session_factory)
        lifecycle = ContainerLifecycle(repository, store, settings, clock=clock)
        retrieval = RetrievalService(repository, store, clock=clock)
        sweeper = ExpirySweeper(repository, lifecycle, settings.SWEEP_INTERVAL_SECONDS, clock=clock)

        app.state.settings = settings
        app.state.database = database
        app.state.blob_store = store
        app.state.repository = repository
        app.state.lifecycle = lifecycle
        app.state.retrieval = retrieval
        app.state.sweeper = sweeper

        if settings.SWEEP_ENABLED:
            sweeper.start()

        yield

        # Cleanup
        await sweeper.stop()
        await store.close()
        await database.dispose()

    app = FastAPI(
        title="Sharebox API",
        version="1.0.0",
        description="Ephemeral file sharing with expiring links.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health_check(db: AsyncSession = Depends(get_db)):
        """Verify API and database connectivity."""
        try:
            await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
        except Exception as e:
            return {"status": "error", "database": str(e)}

    # Register routers
    from sharebox.routes.blobs import router as blobs_router
    from sharebox.routes.share import router as share_router
    from sharebox.routes.upload import router as upload_router
    app.include_router(upload_router)
    app.include_router(share_router)
    app.include_router(blobs_router)

    return app
