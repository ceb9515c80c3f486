"""
Async database connection management.

DatabaseManager owns one async engine and sessionmaker. Each session()
block is one transaction: committed on clean exit, rolled back on error.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from formspace_core.db.config import DatabaseConfig, get_db_config
from formspace_core.models import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Async PostgreSQL connection manager (Cloud SQL connector or direct URL).

    The engine is created lazily on first use so importing the library never
    opens a connection. Any SQLAlchemy async URL is accepted; pool sizing only
    applies to server databases.
    """

    def __init__(
        self,
        config: Optional[DatabaseConfig] = None,
        database_url: Optional[str] = None,
    ):
        self._config = config
        self._database_url = database_url
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None
        self._connector = None

    @property
    def config(self) -> DatabaseConfig:
        if self._config is None:
            self._config = get_db_config()
        return self._config

    @property
    def database_url(self) -> str:
        return self._database_url or self.config.get_connection_url()

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    def _create_engine(self) -> AsyncEngine:
        config = self.config
        if self._database_url is None and config.use_cloud_sql:
            return self._create_cloud_sql_engine()

        url = self.database_url
        engine_kwargs: Dict[str, Any] = {"echo": config.DB_ECHO}
        if url.startswith("sqlite"):
            engine_kwargs["poolclass"] = pool.NullPool
        else:
            engine_kwargs.update(pool_pre_ping=True, **config.pool_kwargs())
        logger.info(f"Creating database engine for {url.split('://')[0]}")
        return create_async_engine(url, **engine_kwargs)

    def _create_cloud_sql_engine(self) -> AsyncEngine:
        """Create async engine with the Cloud SQL connector."""
        from google.cloud.sql.connector import Connector, IPTypes

        config = self.config
        ip_type = (
            IPTypes.PUBLIC if config.CLOUD_SQL_IP_TYPE == "PUBLIC" else IPTypes.PRIVATE
        )

        async def getconn():
            if self._connector is None:
                self._connector = Connector(loop=asyncio.get_running_loop())
            return await self._connector.connect_async(
                config.CLOUD_SQL_INSTANCE,
                "asyncpg",
                user=config.DATABASE_USER,
                password=config.DATABASE_PASSWORD,
                db=config.DATABASE_NAME,
                ip_type=ip_type,
            )

        logger.info(f"Creating Cloud SQL engine for {config.CLOUD_SQL_INSTANCE}")
        return create_async_engine(
            "postgresql+asyncpg://",
            async_creator=getconn,
            echo=config.DB_ECHO,
            **config.pool_kwargs(),
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Transactional session scope."""
        if self._sessionmaker is None:
            self._sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False)
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create all tables (tests and local development; use alembic otherwise)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def close(self) -> None:
        """Dispose the engine and the Cloud SQL connector, if any."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None
        if self._connector is not None:
            await self._connector.close_async()
            self._connector = None


# Global singleton
db = DatabaseManager()


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a transactional session."""
    async with db.session() as session:
        yield session
