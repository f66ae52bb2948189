"""Lifecycle policy: validity window, quota and status classification.

Everything here is pure. Current time is always passed in.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from keygate.common.datetime_utils import truncate_to_seconds
from keygate.features.keys.models import KeyDraft, KeyRecord, KeyStatus, StampedKey

DEFAULT_VALIDITY_WINDOW = timedelta(hours=24)
DEFAULT_MAX_USES = 1

_STATUS_MESSAGES = {
    KeyStatus.VALID: "Key is valid",
    KeyStatus.EXPIRED: "Key has expired",
    KeyStatus.EXHAUSTED: "Key has already been used",
    KeyStatus.NOT_FOUND: "Key not found",
}


@dataclass(frozen=True)
class KeyPolicy:
    """Issuance rules.

    Attributes:
        validity_window: Time from creation to expiry. Fixed per deployment.
        default_max_uses: Quota applied when the draft does not carry one.
    """

    validity_window: timedelta = DEFAULT_VALIDITY_WINDOW
    default_max_uses: int = DEFAULT_MAX_USES

    def __post_init__(self):
        if self.validity_window <= timedelta(0):
            raise ValueError("validity_window must be positive")
        if self.default_max_uses < 1:
            raise ValueError("default_max_uses must be at least 1")

    def stamp(self, draft: KeyDraft, now: datetime) -> StampedKey:
        """Fill in creation/expiry timestamps and the usage quota."""
        max_uses = draft.max_uses if draft.max_uses is not None else self.default_max_uses
        if max_uses < 1:
            raise ValueError(f"max_uses must be at least 1, got {max_uses}")

        created_at = truncate_to_seconds(now)
        return StampedKey(
            name=draft.name,
            token=draft.token,
            format=draft.format,
            length=len(draft.token),
            created_at=created_at,
            expires_at=created_at + self.validity_window,
            max_uses=max_uses,
            used_count=0,
        )


def is_expired(record: KeyRecord, now: datetime) -> bool:
    return not now < record.expires_at


def is_exhausted(record: KeyRecord) -> bool:
    return record.used_count >= record.max_uses


def is_live(record: KeyRecord, now: datetime) -> bool:
    """A record is live iff it is neither expired nor exhausted."""
    return not is_expired(record, now) and not is_exhausted(record)


def classify(record: KeyRecord | None, now: datetime) -> KeyStatus:
    """Classify a record: existence, then expiry, then usage.

    Expiry is checked before exhaustion, so a record that is both reports
    EXPIRED.
    """
    if record is None:
        return KeyStatus.NOT_FOUND
    if is_expired(record, now):
        return KeyStatus.EXPIRED
    if is_exhausted(record):
        return KeyStatus.EXHAUSTED
    return KeyStatus.VALID


def uses_remaining(record: KeyRecord) -> int:
    return max(record.max_uses - record.used_count, 0)


def status_message(status: KeyStatus, consumed: bool = False) -> str:
    """Human-readable message for a classification outcome."""
    if consumed and status is KeyStatus.VALID:
        return "Key is valid and has been consumed"
    return _STATUS_MESSAGES[status]
