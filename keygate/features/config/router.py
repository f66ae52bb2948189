"""Configuration endpoint for runtime settings."""

from fastapi import APIRouter

from keygate.config.settings import settings
from keygate.features.config.schemas import ConfigResponse
from keygate.features.keys.models import KeyFormat

router = APIRouter(prefix="/config", tags=["Configuration"])


@router.get("", response_model=ConfigResponse)
async def get_config() -> ConfigResponse:
    """Get runtime configuration.

    This endpoint is public (no authentication required) as it only
    exposes non-sensitive issuance rules.
    """
    keys = settings.keys
    return ConfigResponse(
        environment=settings.keygate_env,
        store_backend=settings.store_backend,
        key_validity_hours=keys.validity_hours,
        default_max_uses=keys.default_max_uses,
        key_formats=list(KeyFormat),
        default_key_format=keys.default_format,
        min_key_length=keys.min_length,
        max_key_length=keys.max_length,
        search_enabled=settings.search_enabled,
    )
