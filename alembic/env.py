"""
Alembic migration environment for formspace_core.

Supports async migrations with a direct URL or the Cloud SQL Connector.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

# Load environment variables
load_dotenv()

# Import all models so they are registered with Base.metadata
from formspace_core.models import Base  # noqa: E402
from formspace_core.db.config import DatabaseConfig  # noqa: E402

db_config = DatabaseConfig()

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Set target metadata for autogenerate support
target_metadata = Base.metadata


def get_database_url() -> str:
    """
    Get database URL from environment variables.

    DATABASE_URL wins (normalized to postgresql+asyncpg://); otherwise the
    URL is built from the individual DATABASE_* settings.
    """
    return db_config.get_connection_url()


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode.

    Configures the context with just a URL, so no DBAPI is needed.
    Calls to context.execute() emit the given string to the script output.
    """
    context.configure(
        url=get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    """Run migrations with the given connection."""
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


async def create_cloud_sql_engine():
    """Create async engine with the Cloud SQL connector."""
    from google.cloud.sql.connector import Connector, IPTypes

    ip_type = (
        IPTypes.PUBLIC
        if db_config.CLOUD_SQL_IP_TYPE == "PUBLIC"
        else IPTypes.PRIVATE
    )
    connector = Connector(loop=asyncio.get_running_loop())

    async def getconn():
        return await connector.connect_async(
            db_config.CLOUD_SQL_INSTANCE,
            "asyncpg",
            user=db_config.DATABASE_USER,
            password=db_config.DATABASE_PASSWORD,
            db=db_config.DATABASE_NAME,
            ip_type=ip_type,
        )

    engine = create_async_engine(
        "postgresql+asyncpg://",
        async_creator=getconn,
        poolclass=pool.NullPool,
    )
    return engine, connector


async def run_async_migrations() -> None:
    """Run migrations in 'online' mode with an async engine."""
    connector = None
    if db_config.use_cloud_sql:
        connectable, connector = await create_cloud_sql_engine()
    else:
        connectable = create_async_engine(get_database_url(), poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()
    if connector is not None:
        await connector.close_async()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
