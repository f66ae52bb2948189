"""UTC datetime utilities for consistent timezone handling across the service.

This module provides:
1. Custom SQLAlchemy type that enforces UTC and stores as ISO 8601 with 'Z'
2. Utility functions for key timestamps (now, truncation, formatting, parsing)
3. Type validation for timezone-aware datetimes

Key timestamps are kept at whole-second precision everywhere. The SQLite column
format has no fractional part, so the lifecycle policy truncates at stamp time
and every storage backend holds identical values.

Usage:
    from keygate.common.datetime_utils import UTCDateTime, utcnow

    # In SQLAlchemy models:
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # In Python code:
    now = utcnow()  # Always returns timezone-aware UTC datetime
"""

from datetime import UTC, datetime, timedelta

from sqlalchemy import String, TypeDecorator

ISO8601_UTC_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class UTCDateTime(TypeDecorator):
    """SQLAlchemy type that enforces UTC timestamps.

    Storage:
        SQLite: ISO 8601 string with 'Z' suffix stored as TEXT (e.g., '2025-01-15T10:30:00Z')

    Python:
        Always returns timezone-aware datetime objects in UTC.
        Rejects naive datetimes on input.

    The fixed-width text format sorts lexicographically in time order, which is
    what lets expiry comparisons (``expires_at > :now``) run inside SQLite.
    """

    impl = String
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> str | None:
        """Convert Python datetime to database format.

        Raises:
            ValueError: If datetime is naive (no timezone)
        """
        if value is None:
            return None

        if value.tzinfo is None:
            raise ValueError(
                f"Naive datetime not allowed: {value}. "
                "Use datetime.now(UTC) or utcnow() instead of datetime.now()."
            )

        return value.astimezone(UTC).strftime(ISO8601_UTC_FORMAT)

    def process_result_value(self, value: str | None, dialect) -> datetime | None:
        """Convert database format to a timezone-aware UTC datetime."""
        if value is None:
            return None
        return parse_iso8601_utc(value)


def utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Use this instead of datetime.now() or datetime.utcnow().
    """
    return datetime.now(UTC)


def truncate_to_seconds(dt: datetime) -> datetime:
    """Drop sub-second precision from a timezone-aware datetime."""
    validate_aware_datetime(dt)
    return dt.astimezone(UTC).replace(microsecond=0)


def ceil_to_seconds(dt: datetime) -> datetime:
    """Round a timezone-aware datetime up to the next whole second.

    For whole-second stored values, ``stored < ceil_to_seconds(now)`` matches
    ``stored < now`` exactly, even though the column format drops fractions.
    """
    truncated = truncate_to_seconds(dt)
    if dt.microsecond:
        return truncated + timedelta(seconds=1)
    return truncated


def validate_aware_datetime(dt: datetime) -> datetime:
    """Validate that datetime is timezone-aware.

    Args:
        dt: Datetime to validate

    Returns:
        The same datetime if valid

    Raises:
        ValueError: If datetime is naive
    """
    if dt.tzinfo is None:
        raise ValueError(
            f"Naive datetime not allowed: {dt}. "
            "All datetimes must be timezone-aware (use datetime.now(UTC) or utcnow())."
        )
    return dt


def format_iso8601_utc(dt: datetime) -> str:
    """Format datetime as ISO 8601 with 'Z' suffix.

    Args:
        dt: Timezone-aware datetime

    Returns:
        ISO 8601 string with 'Z' suffix (e.g., '2025-01-15T10:30:00Z')

    Raises:
        ValueError: If datetime is naive
    """
    validate_aware_datetime(dt)
    return dt.astimezone(UTC).strftime(ISO8601_UTC_FORMAT)


def parse_iso8601_utc(value: str) -> datetime:
    """Parse an ISO 8601 string ('Z' or '+00:00' suffix) into an aware UTC datetime."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"

    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        raise ValueError(f"Timestamp without timezone: {value}")
    return dt.astimezone(UTC)
