"""JSON file backend: persistence, file layout and failed writes."""

import asyncio
import json
import time
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from keygate.features.keys.exceptions import StoreUnavailableError
from keygate.features.keys.memory_store import JsonFileKeyStore
from keygate.features.keys.models import KeyDraft, KeyFilter, KeyFormat, KeyStatus
from keygate.features.keys.policy import KeyPolicy

NOW = datetime(2025, 1, 15, 10, 30, 0, tzinfo=UTC)


def stamped(token: str, name: str = "Test Key", now: datetime = NOW):
    return KeyPolicy().stamp(KeyDraft(name=name, token=token, format=KeyFormat.HEX), now)


@pytest.mark.unit
class TestJsonFileKeyStore:
    @pytest.mark.asyncio
    async def test_init_creates_empty_file(self, tmp_path):
        path = tmp_path / "nested" / "keys.json"
        store = JsonFileKeyStore(path)

        await store.init()

        data = json.loads(path.read_text())
        assert data["keys"] == []
        assert data["metadata"]["total_keys"] == 0
        assert data["metadata"]["last_generated"] is None

    @pytest.mark.asyncio
    async def test_file_layout(self, json_store):
        await json_store.create(stamped("abcdef0123456789", name="Beta"))

        data = json.loads(json_store.path.read_text())

        assert data["metadata"]["total_keys"] == 1
        assert data["metadata"]["last_generated"] == "2025-01-15T10:30:00Z"
        [key] = data["keys"]
        assert key["token"] == "abcdef0123456789"
        assert key["name"] == "Beta"
        assert key["format"] == "hex"
        assert key["expires_at"] == "2025-01-16T10:30:00Z"
        assert key["used_count"] == 0

    @pytest.mark.asyncio
    async def test_state_survives_restart(self, tmp_path):
        path = tmp_path / "keys.json"
        first = JsonFileKeyStore(path)
        await first.init()
        created = await first.create(stamped("abcdef0123456789"))
        await first.consume("abcdef0123456789", NOW)

        second = JsonFileKeyStore(path)
        await second.init()

        reloaded = await second.get("abcdef0123456789")
        assert reloaded.id == created.id
        assert reloaded.used_count == 1
        assert (await second.consume("abcdef0123456789", NOW)).status is KeyStatus.EXHAUSTED

    @pytest.mark.asyncio
    async def test_ids_continue_after_restart_and_sweep(self, tmp_path):
        path = tmp_path / "keys.json"
        first = JsonFileKeyStore(path)
        await first.init()
        old = await first.create(stamped("abcdef0123456789", now=NOW - timedelta(days=2)))
        await first.sweep_expired(NOW)

        second = JsonFileKeyStore(path)
        await second.init()
        new = await second.create(stamped("9876543210fedcba"))

        assert new.id > old.id

    @pytest.mark.asyncio
    async def test_failed_write_leaves_state_unchanged(self, json_store):
        await json_store.create(stamped("abcdef0123456789"))

        with patch.object(JsonFileKeyStore, "_write_file", side_effect=OSError("disk full")):
            with pytest.raises(StoreUnavailableError):
                await json_store.create(stamped("9876543210fedcba"))
            with pytest.raises(StoreUnavailableError):
                await json_store.consume("abcdef0123456789", NOW)

        assert await json_store.get("9876543210fedcba") is None
        assert (await json_store.get("abcdef0123456789")).used_count == 0
        assert len(await json_store.list_keys(KeyFilter.ALL, NOW)) == 1

    @pytest.mark.asyncio
    async def test_corrupt_file_is_unavailable(self, tmp_path):
        path = tmp_path / "keys.json"
        path.write_text("{not json")

        with pytest.raises(StoreUnavailableError):
            await JsonFileKeyStore(path).init()

    @pytest.mark.asyncio
    async def test_wrong_file_shape_is_unavailable(self, tmp_path):
        path = tmp_path / "keys.json"
        path.write_text("[]")

        with pytest.raises(StoreUnavailableError):
            await JsonFileKeyStore(path).init()


def slowed_write(delay: float):
    real_write = JsonFileKeyStore._write_file

    def write(self, payload):
        time.sleep(delay)
        real_write(self, payload)

    return write


async def cancel_midway(coro):
    task = asyncio.ensure_future(coro)
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.integration
class TestCancelledWrites:
    @pytest.mark.asyncio
    async def test_cancelled_create_matches_file(self, json_store):
        with patch.object(JsonFileKeyStore, "_write_file", slowed_write(0.3)):
            await cancel_midway(json_store.create(stamped("abcdef0123456789")))

        reloaded = JsonFileKeyStore(json_store.path)
        await reloaded.init()

        in_memory = await json_store.get("abcdef0123456789")
        assert in_memory is not None
        assert in_memory == await reloaded.get("abcdef0123456789")

    @pytest.mark.asyncio
    async def test_cancelled_consume_matches_file(self, json_store):
        await json_store.create(stamped("abcdef0123456789"))

        with patch.object(JsonFileKeyStore, "_write_file", slowed_write(0.3)):
            await cancel_midway(json_store.consume("abcdef0123456789", NOW))

        reloaded = JsonFileKeyStore(json_store.path)
        await reloaded.init()

        assert (await json_store.get("abcdef0123456789")).used_count == 1
        assert (await reloaded.get("abcdef0123456789")).used_count == 1

    @pytest.mark.asyncio
    async def test_store_usable_after_cancelled_write(self, json_store):
        with patch.object(JsonFileKeyStore, "_write_file", slowed_write(0.3)):
            await cancel_midway(json_store.create(stamped("abcdef0123456789")))

        await json_store.create(stamped("9876543210fedcba"))

        assert len(await json_store.list_keys(KeyFilter.ALL, NOW)) == 2
