"""Request/response schemas for the key endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field, field_serializer

from keygate.common.datetime_utils import format_iso8601_utc
from keygate.db_sqlite.keys.schemas import KeyRead
from keygate.features.keys.models import KeyFormat, KeyStatus
from keygate.features.keys.service import KeyOutcome, LiveKeysSnapshot


class KeyCreate(BaseModel):
    """Schema for issuing a key. Every field is optional."""

    name: str | None = Field(default=None, max_length=200, examples=["Beta tester"])
    format: KeyFormat | None = Field(default=None, examples=["hex"])
    length: int | None = Field(
        default=None,
        examples=[32],
        description="Requested token length; clamped to the configured range",
    )
    max_uses: int | None = Field(default=None, ge=1, examples=[1])


class GenerateRequest(BaseModel):
    """Body of the script-friendly generation endpoint."""

    name: str | None = Field(default=None, max_length=200, examples=["Generated Key"])


class GenerateResponse(BaseModel):
    success: bool = Field(examples=[True])
    message: str = Field(examples=["Key generated successfully"])
    key: str = Field(examples=["FREE-9f2d7c1a3e-bd4f7a29"])
    expires: datetime
    name: str

    @field_serializer("expires")
    def serialize_datetime(self, dt: datetime) -> str:
        return format_iso8601_utc(dt)


class KeyPublicData(BaseModel):
    """Public metadata of the queried key. Never includes the token."""

    name: str
    format: KeyFormat
    created_at: datetime
    expires_at: datetime
    uses_remaining: int

    @field_serializer("created_at", "expires_at")
    def serialize_datetime(self, dt: datetime) -> str:
        return format_iso8601_utc(dt)


class ValidationResponse(BaseModel):
    """Classification outcome (check or redemption)."""

    valid: bool = Field(examples=[True])
    status: KeyStatus = Field(examples=["valid"])
    message: str = Field(examples=["Key is valid and has been consumed"])
    data: KeyPublicData | None = None

    @classmethod
    def from_outcome(cls, outcome: KeyOutcome) -> "ValidationResponse":
        data = None
        if outcome.record is not None:
            data = KeyPublicData(
                name=outcome.record.name,
                format=outcome.record.format,
                created_at=outcome.record.created_at,
                expires_at=outcome.record.expires_at,
                uses_remaining=outcome.uses_remaining,
            )
        return cls(valid=outcome.valid, status=outcome.status, message=outcome.message, data=data)


class ValidateRequest(BaseModel):
    key: str | None = Field(default=None, examples=["FREE-9f2d7c1a3e-bd4f7a29"])


class LiveKeysMetadata(BaseModel):
    total_keys: int = Field(examples=[3])
    last_generated: datetime | None = None

    @field_serializer("last_generated")
    def serialize_datetime(self, dt: datetime | None) -> str | None:
        return format_iso8601_utc(dt) if dt else None


class LiveKeysResponse(BaseModel):
    """Live keys view: records plus summary metadata."""

    keys: list[KeyRead]
    metadata: LiveKeysMetadata

    @classmethod
    def from_snapshot(cls, snapshot: LiveKeysSnapshot) -> "LiveKeysResponse":
        return cls(
            keys=[KeyRead.model_validate(k) for k in snapshot.keys],
            metadata=LiveKeysMetadata(
                total_keys=snapshot.total_keys, last_generated=snapshot.last_generated
            ),
        )


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=256, examples=["beta"])


class CleanupResponse(BaseModel):
    removed: int = Field(examples=[4])
