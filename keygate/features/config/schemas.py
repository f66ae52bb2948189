"""Configuration endpoint schemas."""

from pydantic import BaseModel, Field

from keygate.features.keys.models import KeyFormat


class ConfigResponse(BaseModel):
    """Runtime configuration response.

    Exposes the issuance rules a frontend needs to render its key form.
    """

    environment: str = Field(description="Current environment (development/production)")
    store_backend: str = Field(description="Active key store backend")
    key_validity_hours: int = Field(description="Hours a key stays valid after creation")
    default_max_uses: int = Field(description="Redemptions allowed per key by default")
    key_formats: list[KeyFormat] = Field(description="Supported token formats")
    default_key_format: KeyFormat = Field(description="Format used when none is requested")
    min_key_length: int = Field(description="Lower clamp bound for token length")
    max_key_length: int = Field(description="Upper clamp bound for token length")
    search_enabled: bool = Field(description="Whether key search is configured")
