import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from kioku.core.config import settings
from kioku.core.logging import get_logger
from kioku.db.base import Base
from kioku.utils.exceptions import KiokuError, DatabaseError

logger = get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Owned handle over the single local store connection.

    Every logical operation runs inside ``session()``, which holds the store
    lock for its whole duration. Network I/O must happen outside of it.
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        self.url = url or settings.DATABASE_URL
        self.engine = create_async_engine(
            self.url,
            echo=settings.DEBUG if echo is None else echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self.session_factory = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
            class_=AsyncSession,
            autoflush=False,
        )
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self._lock:
            async with self.session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except KiokuError:
                    await session.rollback()
                    raise
                except SQLAlchemyError as e:
                    await session.rollback()
                    logger.error(f"Database session error: {e}")
                    raise DatabaseError("Local store operation failed", details={"cause": str(e)}) from e
                except Exception:
                    await session.rollback()
                    raise

    async def init_db(self) -> None:
        # Register every mapped table before create_all
        import kioku.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Local store initialized at {self.url}")

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
