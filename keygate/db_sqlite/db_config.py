"""SQLite async engine construction.

The engine is created by whoever owns the store (``SQLiteKeyStore``), never at
import time, so tests and the app each get their own isolated database.

Key settings:
- WAL mode for non-blocking reads during writes
- busy timeout so concurrent writers wait for the lock instead of failing
- foreign keys enabled
"""

from loguru import logger
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

BUSY_TIMEOUT_SECONDS = 30


def create_sqlite_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async SQLite engine with the connection PRAGMAs applied.

    Args:
        url: ``sqlite+aiosqlite:///...`` URL
        echo: Log SQL statements

    Returns:
        Configured async engine
    """
    engine = create_async_engine(
        url,
        echo=echo,
        connect_args={"timeout": BUSY_TIMEOUT_SECONDS},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")  # Write-Ahead Logging
        cursor.execute("PRAGMA synchronous=NORMAL")  # Safe with WAL
        cursor.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_SECONDS * 1000}")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory bound to ``engine``; objects stay usable after commit."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def checkpoint_wal(engine: AsyncEngine) -> None:
    """Force a WAL checkpoint to write changes to main database file.

    Should be called on application shutdown to ensure durability.
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("PRAGMA wal_checkpoint(TRUNCATE)"))
        logger.info("SQLite WAL checkpoint complete")
    except Exception as e:
        logger.warning(f"WAL checkpoint failed: {e}")
