"""Domain types for the key lifecycle.

These are plain dataclasses and enums shared by the generator, the lifecycle
policy, every store backend and the service. Persistence models (SQLAlchemy)
and API schemas (Pydantic) convert to and from ``KeyRecord``.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class KeyFormat(StrEnum):
    """How a token string was generated. Display only; never affects validation."""

    UUID = "uuid"
    HEX = "hex"
    ALPHANUMERIC = "alphanumeric"
    CUSTOM = "custom"
    SEGMENTED = "segmented"


class KeyStatus(StrEnum):
    """Classification of a token at a point in time."""

    VALID = "valid"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    NOT_FOUND = "not_found"


class KeyFilter(StrEnum):
    """Listing filter."""

    ALL = "all"
    LIVE_ONLY = "live_only"


@dataclass(frozen=True)
class KeyDraft:
    """Issuer input before the policy stamps timestamps and quota."""

    name: str
    token: str
    format: KeyFormat
    max_uses: int | None = None


@dataclass(frozen=True)
class StampedKey:
    """A key ready to be persisted; everything but the store-assigned id."""

    name: str
    token: str
    format: KeyFormat
    length: int
    created_at: datetime
    expires_at: datetime
    max_uses: int
    used_count: int = 0


@dataclass(frozen=True)
class KeyRecord:
    """A persisted key."""

    id: int
    name: str
    token: str
    format: KeyFormat
    length: int
    created_at: datetime
    expires_at: datetime
    used_count: int
    max_uses: int

    @classmethod
    def from_stamped(cls, key_id: int, stamped: StampedKey) -> "KeyRecord":
        return cls(
            id=key_id,
            name=stamped.name,
            token=stamped.token,
            format=stamped.format,
            length=stamped.length,
            created_at=stamped.created_at,
            expires_at=stamped.expires_at,
            used_count=stamped.used_count,
            max_uses=stamped.max_uses,
        )


@dataclass(frozen=True)
class ConsumeResult:
    """Outcome of an atomic consume.

    On success ``status`` is VALID and ``record`` is the state *before* the
    increment. Otherwise ``record`` is the unchanged record, or None for
    NOT_FOUND.
    """

    status: KeyStatus
    record: KeyRecord | None

    @property
    def consumed(self) -> bool:
        return self.status is KeyStatus.VALID
