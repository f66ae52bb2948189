"""In-process key store backends.

``InMemoryKeyStore`` keeps records in a dict guarded by a single asyncio lock.
Every mutation builds the next state first, hands it to ``_persist`` and only
then swaps it in, so a failed write leaves the previous state untouched. A
cancelled caller does not interrupt a write already in flight: the write and
the swap complete before the cancellation propagates.

``JsonFileKeyStore`` persists that state to a JSON file after every mutation
(``{"keys": [...], "metadata": {...}}``). Writes go to a temp file and are
renamed into place in a worker thread.
"""

import asyncio
import json
import os
import tempfile
from dataclasses import asdict, replace
from datetime import datetime
from pathlib import Path

from loguru import logger

from keygate.common.datetime_utils import format_iso8601_utc, parse_iso8601_utc
from keygate.common.utils import mask_token
from keygate.features.keys import policy
from keygate.features.keys.exceptions import DuplicateTokenError, StoreUnavailableError
from keygate.features.keys.models import (
    ConsumeResult,
    KeyFilter,
    KeyFormat,
    KeyRecord,
    KeyStatus,
    StampedKey,
)
from keygate.features.keys.store import KeyStore


def _newest_first(records) -> list[KeyRecord]:
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)


class InMemoryKeyStore(KeyStore):
    """Dict-backed store. State lives for the lifetime of the process."""

    backend_name = "memory"

    def __init__(self):
        self._lock = asyncio.Lock()
        self._records: dict[str, KeyRecord] = {}  # token -> record
        self._next_id = 1

    async def _persist(self, records: dict[str, KeyRecord], next_id: int) -> None:
        """Hook for durable subclasses. Raise to abort the mutation."""

    async def _commit(self, records: dict[str, KeyRecord], next_id: int) -> None:
        """Persist and swap in the next state as one step.

        A caller cancelled mid-write still waits (holding the lock) until the
        write settles, so memory always matches what reached storage. The
        cancellation is re-raised afterwards.
        """
        task = asyncio.ensure_future(self._persist_then_swap(records, next_id))
        cancelled = False
        while not task.done():
            try:
                await asyncio.wait([task])
            except asyncio.CancelledError:
                cancelled = True

        if cancelled:
            if task.exception() is not None:
                logger.warning(f"Write failed after cancellation: {task.exception()}")
            raise asyncio.CancelledError
        task.result()

    async def _persist_then_swap(self, records: dict[str, KeyRecord], next_id: int) -> None:
        await self._persist(records, next_id)
        self._records = records
        self._next_id = next_id

    async def create(self, key: StampedKey) -> KeyRecord:
        async with self._lock:
            if key.token in self._records:
                raise DuplicateTokenError(mask_token(key.token))

            record = KeyRecord.from_stamped(self._next_id, key)
            records = dict(self._records)
            records[record.token] = record
            await self._commit(records, self._next_id + 1)
            return record

    async def get(self, token: str) -> KeyRecord | None:
        return self._records.get(token)

    async def consume(self, token: str, now: datetime) -> ConsumeResult:
        async with self._lock:
            record = self._records.get(token)
            status = policy.classify(record, now)
            if status is not KeyStatus.VALID:
                return ConsumeResult(status, record)

            records = dict(self._records)
            records[token] = replace(record, used_count=record.used_count + 1)
            await self._commit(records, self._next_id)
            return ConsumeResult(KeyStatus.VALID, record)

    async def list_keys(self, key_filter: KeyFilter, now: datetime) -> list[KeyRecord]:
        records = self._records.values()
        if key_filter is KeyFilter.LIVE_ONLY:
            records = [r for r in records if policy.is_live(r, now)]
        return _newest_first(records)

    async def search(self, query: str, now: datetime, limit: int) -> list[KeyRecord]:
        needle = query.casefold()
        matches = [
            r
            for r in self._records.values()
            if policy.is_live(r, now)
            and (needle in r.name.casefold() or needle in r.token.casefold())
        ]
        return _newest_first(matches)[:limit]

    async def sweep_expired(self, now: datetime) -> int:
        async with self._lock:
            records = {t: r for t, r in self._records.items() if not r.expires_at < now}
            removed = len(self._records) - len(records)
            if removed:
                await self._commit(records, self._next_id)
            return removed

    async def clear(self) -> int:
        async with self._lock:
            removed = len(self._records)
            await self._commit({}, self._next_id)
            return removed


class JsonFileKeyStore(InMemoryKeyStore):
    """In-memory store mirrored to a JSON file."""

    backend_name = "json"

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)

    async def init(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            records, next_id = await loop.run_in_executor(None, self._read_file)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise StoreUnavailableError(f"Cannot load key file {self.path}: {e}") from e

        async with self._lock:
            self._records = records
            self._next_id = next_id
        logger.info(f"Loaded {len(records)} keys from {self.path}")

    async def _persist(self, records: dict[str, KeyRecord], next_id: int) -> None:
        payload = _encode_payload(records.values(), next_id)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write_file, payload)
        except OSError as e:
            logger.error(
                "Failed to write key file",
                extra={"path": str(self.path), "error": str(e), "error_type": type(e).__name__},
            )
            raise StoreUnavailableError(f"Cannot write key file {self.path}: {e}") from e

    def _read_file(self) -> tuple[dict[str, KeyRecord], int]:
        if not self.path.exists():
            self._write_file(_encode_payload([], 1))
            return {}, 1

        data = json.loads(self.path.read_text(encoding="utf-8"))
        records = {}
        for item in data["keys"]:
            record = _decode_record(item)
            records[record.token] = record

        highest = max((r.id for r in records.values()), default=0)
        next_id = max(int(data.get("metadata", {}).get("next_id", 1)), highest + 1)
        return records, next_id

    def _write_file(self, payload: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".keys-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise


def _encode_payload(records, next_id: int) -> dict:
    ordered = sorted(records, key=lambda r: r.id)
    last = max((r.created_at for r in ordered), default=None)
    return {
        "keys": [_encode_record(r) for r in ordered],
        "metadata": {
            "total_keys": len(ordered),
            "last_generated": format_iso8601_utc(last) if last else None,
            "next_id": next_id,
        },
    }


def _encode_record(record: KeyRecord) -> dict:
    data = asdict(record)
    data["format"] = record.format.value
    data["created_at"] = format_iso8601_utc(record.created_at)
    data["expires_at"] = format_iso8601_utc(record.expires_at)
    return data


def _decode_record(item: dict) -> KeyRecord:
    return KeyRecord(
        id=int(item["id"]),
        name=item["name"],
        token=item["token"],
        format=KeyFormat(item["format"]),
        length=int(item["length"]),
        created_at=parse_iso8601_utc(item["created_at"]),
        expires_at=parse_iso8601_utc(item["expires_at"]),
        used_count=int(item["used_count"]),
        max_uses=int(item["max_uses"]),
    )
