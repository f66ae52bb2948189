"""Key store contract.

Every backend (SQLite, in-memory, JSON file) implements ``KeyStore``. The
rest of the service depends only on this interface.

Each operation is atomic with respect to concurrent callers. ``consume`` in
particular checks validity and increments ``used_count`` as one indivisible
step; no caller outside a store ever read-modify-writes a record.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from keygate.features.keys.models import ConsumeResult, KeyFilter, KeyRecord, StampedKey


class KeyStore(ABC):
    """Durable mapping from token to key record."""

    #: Short backend name for logs and the config endpoint.
    backend_name: str = "abstract"

    async def init(self) -> None:
        """Prepare storage (create tables, load files). Called once at startup."""

    async def close(self) -> None:
        """Flush and release resources. Called once at shutdown."""

    @abstractmethod
    async def create(self, key: StampedKey) -> KeyRecord:
        """Persist a new key and assign its id.

        Raises:
            DuplicateTokenError: If the token already exists.
            StoreUnavailableError: On persistence failure (nothing is written).
        """

    @abstractmethod
    async def get(self, token: str) -> KeyRecord | None:
        """Look up a key by token."""

    @abstractmethod
    async def consume(self, token: str, now: datetime) -> ConsumeResult:
        """Atomically validate and increment usage.

        Returns VALID with the pre-increment record on success; otherwise
        NOT_FOUND, EXPIRED or EXHAUSTED with the record left unchanged.
        """

    @abstractmethod
    async def list_keys(self, key_filter: KeyFilter, now: datetime) -> list[KeyRecord]:
        """List keys, newest first. LIVE_ONLY is a point-in-time view."""

    @abstractmethod
    async def search(self, query: str, now: datetime, limit: int) -> list[KeyRecord]:
        """Case-insensitive substring match over name and token.

        Only live records, newest first, at most ``limit`` results.
        """

    @abstractmethod
    async def sweep_expired(self, now: datetime) -> int:
        """Delete records whose expiry is before ``now``. Returns the count removed."""

    @abstractmethod
    async def clear(self) -> int:
        """Delete every record. Returns the count removed."""
