"""Key service: issuance, redemption, classification and read-only views.

The service owns no state beyond its store and a clock. It is constructed
explicitly (``build_key_service``) and handed to the HTTP layer through
``app.state``.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from keygate.common.datetime_utils import utcnow
from keygate.common.utils import mask_token
from keygate.features.keys import policy, token_generator
from keygate.features.keys.exceptions import DuplicateTokenError, GenerationFailedError
from keygate.features.keys.models import (
    KeyDraft,
    KeyFilter,
    KeyFormat,
    KeyRecord,
    KeyStatus,
)
from keygate.features.keys.policy import KeyPolicy
from keygate.features.keys.store import KeyStore

DEFAULT_KEY_NAME = "Unnamed Key"


@dataclass(frozen=True)
class KeyOutcome:
    """Result of a check or a redemption.

    ``record`` is the queried key (pre-increment state when ``consumed``),
    or None when the token is unknown.
    """

    status: KeyStatus
    record: KeyRecord | None
    consumed: bool = False

    @property
    def valid(self) -> bool:
        return self.status is KeyStatus.VALID

    @property
    def message(self) -> str:
        return policy.status_message(self.status, self.consumed)

    @property
    def uses_remaining(self) -> int | None:
        if self.record is None:
            return None
        remaining = policy.uses_remaining(self.record)
        return remaining - 1 if self.consumed else remaining


@dataclass(frozen=True)
class LiveKeysSnapshot:
    """Point-in-time view of live keys for presentation layers."""

    keys: list[KeyRecord]
    total_keys: int
    last_generated: datetime | None


class KeyService:
    """Generator + policy + store pipeline."""

    def __init__(
        self,
        store: KeyStore,
        key_policy: KeyPolicy | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        default_format: KeyFormat = KeyFormat.UUID,
        default_length: int = 32,
        min_length: int = token_generator.DEFAULT_MIN_LENGTH,
        max_length: int = token_generator.DEFAULT_MAX_LENGTH,
        generation_max_attempts: int = 3,
        search_limit: int = 1,
    ):
        self.store = store
        self.policy = key_policy or KeyPolicy()
        self.clock = clock
        self.default_format = default_format
        self.default_length = default_length
        self.min_length = min_length
        self.max_length = max_length
        self.generation_max_attempts = generation_max_attempts
        self.search_limit = search_limit

    async def issue(
        self,
        name: str | None = None,
        key_format: KeyFormat | None = None,
        length: int | None = None,
        max_uses: int | None = None,
    ) -> KeyRecord:
        """Generate, stamp and persist a new key.

        Token collisions are retried with a fresh token up to
        ``generation_max_attempts`` times.

        Raises:
            GenerationFailedError: Every attempt collided.
            StoreUnavailableError: Persistence failed (not retried).
        """
        key_format = key_format or self.default_format
        length = length if length is not None else self.default_length

        for attempt in range(1, self.generation_max_attempts + 1):
            token = token_generator.generate(
                key_format, length, min_length=self.min_length, max_length=self.max_length
            )
            draft = KeyDraft(
                name=name or DEFAULT_KEY_NAME, token=token, format=key_format, max_uses=max_uses
            )
            stamped = self.policy.stamp(draft, self.clock())
            try:
                record = await self.store.create(stamped)
            except DuplicateTokenError:
                logger.warning(
                    "Token collision, regenerating",
                    extra={"attempt": attempt, "format": key_format.value},
                )
                continue

            logger.info(
                f"Issued key {mask_token(record.token)}",
                extra={"key_id": record.id, "format": key_format.value, "max_uses": record.max_uses},
            )
            return record

        raise GenerationFailedError(self.generation_max_attempts)

    async def check(self, token: str) -> KeyOutcome:
        """Classify a token without consuming it."""
        record = await self.store.get(token)
        return KeyOutcome(policy.classify(record, self.clock()), record)

    async def redeem(self, token: str) -> KeyOutcome:
        """Atomically validate and consume one use of a token."""
        result = await self.store.consume(token, self.clock())
        outcome = KeyOutcome(result.status, result.record, consumed=result.consumed)
        logger.info(
            f"Redemption of {mask_token(token)}: {outcome.status.value}",
            extra={"key_id": result.record.id if result.record else None},
        )
        return outcome

    async def list_keys(self, key_filter: KeyFilter = KeyFilter.ALL) -> list[KeyRecord]:
        return await self.store.list_keys(key_filter, self.clock())

    async def search(self, query: str, limit: int | None = None) -> list[KeyRecord]:
        """Live keys whose name or token contains ``query``, newest first."""
        return await self.store.search(query, self.clock(), limit or self.search_limit)

    async def snapshot(self) -> LiveKeysSnapshot:
        """Live keys plus summary metadata, computed fresh on every call."""
        keys = await self.store.list_keys(KeyFilter.LIVE_ONLY, self.clock())
        last_generated = max((k.created_at for k in keys), default=None)
        return LiveKeysSnapshot(keys=keys, total_keys=len(keys), last_generated=last_generated)

    async def sweep_expired(self) -> int:
        removed = await self.store.sweep_expired(self.clock())
        if removed > 0:
            logger.info(f"Cleaned up {removed} expired keys")
        return removed

    async def clear(self) -> int:
        removed = await self.store.clear()
        logger.warning(f"Cleared key store ({removed} keys removed)")
        return removed


def build_key_store(app_settings) -> KeyStore:
    """Construct the store backend named by ``KEYGATE_STORE_BACKEND``."""
    backend = app_settings.store_backend
    if backend == "sqlite":
        from keygate.db_sqlite.keys.repository import SQLiteKeyStore

        return SQLiteKeyStore(app_settings.database.sqlite_url)
    if backend == "json":
        from keygate.features.keys.memory_store import JsonFileKeyStore

        return JsonFileKeyStore(app_settings.database.json_path_resolved)
    if backend == "memory":
        from keygate.features.keys.memory_store import InMemoryKeyStore

        return InMemoryKeyStore()
    raise ValueError(f"Unknown store backend: {backend}")


def build_key_service(app_settings, store: KeyStore | None = None) -> KeyService:
    """Build a service from ``AppSettings``."""
    keys = app_settings.keys
    return KeyService(
        store or build_key_store(app_settings),
        KeyPolicy(
            validity_window=timedelta(hours=keys.validity_hours),
            default_max_uses=keys.default_max_uses,
        ),
        default_format=keys.default_format,
        default_length=keys.default_length,
        min_length=keys.min_length,
        max_length=keys.max_length,
        generation_max_attempts=keys.generation_max_attempts,
        search_limit=keys.search_result_limit,
    )
