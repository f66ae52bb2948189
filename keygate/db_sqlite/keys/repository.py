"""SQLite key store.

All operations run in their own transaction. ``consume`` is one conditional
UPDATE (``used_count < max_uses AND expires_at > now``); SQLite serializes
writers, so concurrent consumes of the same token, and a consume racing a
sweep, are totally ordered and the first writer wins.
"""

from dataclasses import replace
from datetime import datetime

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine

from keygate.common.datetime_utils import ceil_to_seconds
from keygate.common.utils import mask_token
from keygate.db_sqlite.base import Base
from keygate.db_sqlite.db_config import (
    checkpoint_wal,
    create_session_factory,
    create_sqlite_engine,
)
from keygate.db_sqlite.keys.models import KeyTable
from keygate.features.keys import policy
from keygate.features.keys.exceptions import DuplicateTokenError, StoreUnavailableError
from keygate.features.keys.models import (
    ConsumeResult,
    KeyFilter,
    KeyRecord,
    KeyStatus,
    StampedKey,
)
from keygate.features.keys.store import KeyStore


def _live_clause(now: datetime):
    return (KeyTable.expires_at > now) & (KeyTable.used_count < KeyTable.max_uses)


_NEWEST_FIRST = (KeyTable.created_at.desc(), KeyTable.id.desc())


class SQLiteKeyStore(KeyStore):
    """Key store backed by SQLite through SQLAlchemy's async engine (aiosqlite)."""

    backend_name = "sqlite"

    def __init__(self, url: str, engine: AsyncEngine | None = None):
        self.url = url
        self.engine = engine or create_sqlite_engine(url)
        self._session = create_session_factory(self.engine)

    async def init(self) -> None:
        """Create tables if they don't exist."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except DBAPIError as e:
            raise StoreUnavailableError(f"Cannot initialize key database: {e}") from e
        logger.info(f"SQLite key store ready: {self.url}")

    async def close(self) -> None:
        await checkpoint_wal(self.engine)
        await self.engine.dispose()
        logger.info("SQLite key store closed")

    async def create(self, key: StampedKey) -> KeyRecord:
        row = KeyTable.from_stamped(key)
        try:
            async with self._session() as session:
                async with session.begin():
                    session.add(row)
                    await session.flush()
                    record = row.to_record()
        except IntegrityError as e:
            # The only unique constraint besides the PK is the token
            raise DuplicateTokenError(mask_token(key.token)) from e
        except DBAPIError as e:
            raise StoreUnavailableError(f"Failed to create key: {e}") from e

        logger.debug(f"Created key id={record.id} token={mask_token(record.token)}")
        return record

    async def get(self, token: str) -> KeyRecord | None:
        try:
            async with self._session() as session:
                row = await session.scalar(select(KeyTable).where(KeyTable.token == token))
                return row.to_record() if row else None
        except DBAPIError as e:
            raise StoreUnavailableError(f"Failed to read key: {e}") from e

    async def consume(self, token: str, now: datetime) -> ConsumeResult:
        try:
            async with self._session() as session:
                async with session.begin():
                    result = await session.execute(
                        update(KeyTable)
                        .where(KeyTable.token == token, _live_clause(now))
                        .values(used_count=KeyTable.used_count + 1)
                        .execution_options(synchronize_session=False)
                    )
                    # Same transaction: the row cannot change under us
                    row = await session.scalar(select(KeyTable).where(KeyTable.token == token))
                    record = row.to_record() if row else None
        except DBAPIError as e:
            raise StoreUnavailableError(f"Failed to consume key: {e}") from e

        if record is None:
            return ConsumeResult(KeyStatus.NOT_FOUND, None)

        if result.rowcount == 1:
            prior = replace(record, used_count=record.used_count - 1)
            return ConsumeResult(KeyStatus.VALID, prior)

        return ConsumeResult(policy.classify(record, now), record)

    async def list_keys(self, key_filter: KeyFilter, now: datetime) -> list[KeyRecord]:
        stmt = select(KeyTable).order_by(*_NEWEST_FIRST)
        if key_filter is KeyFilter.LIVE_ONLY:
            stmt = stmt.where(_live_clause(now))
        return await self._fetch(stmt)

    async def search(self, query: str, now: datetime, limit: int) -> list[KeyRecord]:
        stmt = (
            select(KeyTable)
            .where(
                KeyTable.name.icontains(query, autoescape=True)
                | KeyTable.token.icontains(query, autoescape=True),
                _live_clause(now),
            )
            .order_by(*_NEWEST_FIRST)
            .limit(limit)
        )
        return await self._fetch(stmt)

    async def sweep_expired(self, now: datetime) -> int:
        # The bound value loses its fraction; round up so a record expired
        # earlier within the same second is still removed
        cutoff = ceil_to_seconds(now)
        return await self._delete(delete(KeyTable).where(KeyTable.expires_at < cutoff))

    async def clear(self) -> int:
        return await self._delete(delete(KeyTable))

    async def _fetch(self, stmt) -> list[KeyRecord]:
        try:
            async with self._session() as session:
                rows = (await session.scalars(stmt)).all()
                return [row.to_record() for row in rows]
        except DBAPIError as e:
            raise StoreUnavailableError(f"Failed to query keys: {e}") from e

    async def _delete(self, stmt) -> int:
        try:
            async with self._session() as session:
                async with session.begin():
                    result = await session.execute(stmt.execution_options(synchronize_session=False))
        except DBAPIError as e:
            raise StoreUnavailableError(f"Failed to delete keys: {e}") from e
        return result.rowcount
