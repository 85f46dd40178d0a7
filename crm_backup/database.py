"""Async SQLAlchemy engine helpers."""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from .config import BackupConfig
from .schema import Base


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_config(config: BackupConfig, **kwargs) -> AsyncEngine:
    """Create the async engine used by every backup component.

    SQLite does not enforce foreign keys unless asked to on every connection,
    so the pragma is installed when ``sqlite_foreign_keys`` is set.
    """
    engine = create_async_engine(config.database_url, **kwargs)
    if engine.dialect.name == "sqlite" and config.sqlite_foreign_keys:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


async def create_schema(engine: AsyncEngine) -> None:
    """Create all CRM tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
