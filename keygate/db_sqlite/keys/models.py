"""Key database model.

Uses modern SQLAlchemy 2.0 syntax with Mapped[] type hints.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from keygate.common.datetime_utils import UTCDateTime
from keygate.db_sqlite.base import Base
from keygate.features.keys.models import KeyFormat, KeyRecord, StampedKey


class KeyTable(Base):
    """Single-use access key.

    ``used_count`` is only ever changed by the conditional UPDATE in
    ``SQLiteKeyStore.consume``.
    """

    __tablename__ = "keys"
    __table_args__ = (
        CheckConstraint("used_count >= 0", name="ck_keys_used_count_non_negative"),
        CheckConstraint("max_uses >= 1", name="ck_keys_max_uses_positive"),
        CheckConstraint("used_count <= max_uses", name="ck_keys_used_within_quota"),
        Index("ix_keys_created_at", "created_at"),
        Index("ix_keys_expires_at", "expires_at"),
        # AUTOINCREMENT: ids are never reused after a sweep
        {"sqlite_autoincrement": True},
    )

    # Primary key (monotonically increasing)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Human-readable label (not unique)
    name: Mapped[str] = mapped_column(String, nullable=False)

    # Secret token value
    token: Mapped[str] = mapped_column(String(256), nullable=False, unique=True, index=True)

    # Generation format (display only)
    format: Mapped[str] = mapped_column(String(32), nullable=False)
    length: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps - Always UTC with timezone awareness
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # Usage accounting
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    @classmethod
    def from_stamped(cls, key: StampedKey) -> "KeyTable":
        return cls(
            name=key.name,
            token=key.token,
            format=key.format.value,
            length=key.length,
            created_at=key.created_at,
            expires_at=key.expires_at,
            used_count=key.used_count,
            max_uses=key.max_uses,
        )

    def to_record(self) -> KeyRecord:
        return KeyRecord(
            id=self.id,
            name=self.name,
            token=self.token,
            format=KeyFormat(self.format),
            length=self.length,
            created_at=self.created_at,
            expires_at=self.expires_at,
            used_count=self.used_count,
            max_uses=self.max_uses,
        )
