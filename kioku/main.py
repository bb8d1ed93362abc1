from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from kioku.api.v1 import users, decks, quizzes, sync
from kioku.clients.remote_client import RemoteClient
from kioku.core.config import settings
from kioku.core.logging import get_logger, setup_logging
from kioku.db.session import Database
from kioku.middleware.monitoring_middleware import RequestLoggingMiddleware
from kioku.services.sync_service import SyncService
from kioku.utils.error_handler import setup_exception_handlers

logger = get_logger(__name__)


def create_app(database: Optional[Database] = None, remote: Optional[RemoteClient] = None) -> FastAPI:
    """
    Build the command surface over one local store.

    Args:
        database: Store handle; defaults to settings.DATABASE_URL
        remote: Sync server client; defaults to one over settings.REMOTE_API_URL when configured
    """
    database = database or Database()
    if remote is None and settings.REMOTE_API_URL:
        remote = RemoteClient()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        logger.info("Starting Kioku backend")
        await database.init_db()
        yield
        logger.info("Shutting down Kioku backend")
        if remote is not None:
            await remote.aclose()
        await database.dispose()

    app = FastAPI(
        lifespan=lifespan,
        title="Kioku API",
        description="Offline-first flashcard and quiz backend",
        version="0.1.0",
    )
    app.state.database = database
    app.state.remote = remote
    app.state.sync_service = SyncService(database, remote)

    setup_exception_handlers(app)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])
    app.include_router(decks.router, prefix="/api/v1/decks", tags=["Decks"])
    app.include_router(quizzes.router, prefix="/api/v1/quizzes", tags=["Quizzes"])
    app.include_router(sync.router, prefix="/api/v1/sync", tags=["Sync"])

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    return app


app = create_app()
