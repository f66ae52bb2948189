"""Key Pydantic schemas for serialization."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from keygate.common.datetime_utils import format_iso8601_utc, validate_aware_datetime
from keygate.features.keys.models import KeyFormat


class KeyRead(BaseModel):
    """Schema for reading a key (admin views and issuance responses).

    Attributes:
        id: Store-assigned identifier
        name: Human-readable label
        token: Secret token value
        format: Generation format
        length: Token length
        created_at: Creation timestamp
        expires_at: Expiry timestamp
        used_count: Redemptions so far
        max_uses: Redemptions allowed
    """

    id: int = Field(examples=[42], description="Store-assigned identifier")
    name: str = Field(examples=["Unnamed Key"], description="Human-readable label")
    token: str = Field(
        examples=["FREE-9f2d7c1a3e-bd4f7a29"],
        description="Secret token value",
    )
    format: KeyFormat = Field(examples=["segmented"], description="Generation format")
    length: int = Field(examples=[24], description="Token length")
    created_at: datetime = Field(
        examples=["2025-01-15T10:30:00Z"],
        description="Timestamp when key was created (UTC)",
    )
    expires_at: datetime = Field(
        examples=["2025-01-16T10:30:00Z"],
        description="Timestamp after which the key is invalid (UTC)",
    )
    used_count: int = Field(examples=[0], description="Redemptions so far")
    max_uses: int = Field(examples=[1], description="Redemptions allowed")

    model_config = ConfigDict(from_attributes=True)

    # Validator: Reject naive datetimes
    @field_validator("created_at", "expires_at", mode="before")
    @classmethod
    def validate_timezone_aware(cls, v: datetime) -> datetime:
        """Ensure datetime is timezone-aware."""
        if isinstance(v, datetime):
            return validate_aware_datetime(v)
        return v

    # Serializer: Always output ISO 8601 with 'Z' suffix
    @field_serializer("created_at", "expires_at")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime as ISO 8601 with 'Z' suffix."""
        return format_iso8601_utc(dt)
