"""Key issuance, listing, validation and maintenance endpoints.

Routes are thin: each one maps onto a single ``KeyService`` call.
``StoreUnavailableError`` is left to the application-level exception handler.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from loguru import logger

from keygate.db_sqlite.keys.schemas import KeyRead
from keygate.features.keys.dependencies import (
    KeyServiceDep,
    require_search_secret,
    sweep_before_request,
)
from keygate.features.keys.exceptions import GenerationFailedError
from keygate.features.keys.models import KeyFilter, KeyFormat, KeyStatus
from keygate.features.keys.schemas import (
    CleanupResponse,
    GenerateRequest,
    GenerateResponse,
    KeyCreate,
    LiveKeysResponse,
    SearchRequest,
    ValidateRequest,
    ValidationResponse,
)

router = APIRouter(prefix="/keys", tags=["keys"])
validate_router = APIRouter(tags=["validation"])


@router.post("", response_model=KeyRead)
async def create_key(body: KeyCreate, service: KeyServiceDep) -> KeyRead:
    """Issue a new key."""
    try:
        record = await service.issue(
            name=body.name, key_format=body.format, length=body.length, max_uses=body.max_uses
        )
    except GenerationFailedError as e:
        logger.error(f"Key generation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate key",
        )
    return KeyRead.model_validate(record)


@router.get("", response_model=list[KeyRead], dependencies=[Depends(sweep_before_request)])
async def list_keys(service: KeyServiceDep) -> list[KeyRead]:
    """All keys (including used-up ones until they expire), newest first."""
    records = await service.list_keys(KeyFilter.ALL)
    return [KeyRead.model_validate(r) for r in records]


@router.get("/live", response_model=LiveKeysResponse)
@router.get("/file", response_model=LiveKeysResponse, include_in_schema=False)
async def live_keys(service: KeyServiceDep) -> LiveKeysResponse:
    """Live keys with summary metadata."""
    return LiveKeysResponse.from_snapshot(await service.snapshot())


@router.get("/check/{token}", response_model=ValidationResponse)
async def check_key(token: str, service: KeyServiceDep) -> ValidationResponse:
    """Classify a key without consuming it."""
    return ValidationResponse.from_outcome(await service.check(token))


@router.post(
    "/search",
    response_model=list[KeyRead],
    dependencies=[Depends(require_search_secret), Depends(sweep_before_request)],
)
async def search_keys(body: SearchRequest, service: KeyServiceDep) -> list[KeyRead]:
    """Live keys whose name or token contains the query, newest first."""
    records = await service.search(body.query)
    return [KeyRead.model_validate(r) for r in records]


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_keys(service: KeyServiceDep) -> CleanupResponse:
    """Remove expired keys now."""
    return CleanupResponse(removed=await service.sweep_expired())


@validate_router.get("/validate/{token}", response_model=ValidationResponse)
async def redeem_key_path(token: str, service: KeyServiceDep) -> ValidationResponse:
    """Validate and consume a key given in the path."""
    return ValidationResponse.from_outcome(await service.redeem(token))


@validate_router.get("/validate", response_model=ValidationResponse)
async def redeem_key_query(
    service: KeyServiceDep, key: str | None = Query(default=None)
) -> ValidationResponse:
    """Validate and consume a key given as ``?key=``."""
    if not key:
        return _missing_key_response()
    return ValidationResponse.from_outcome(await service.redeem(key))


@validate_router.post("/validate", response_model=ValidationResponse)
async def redeem_key_body(body: ValidateRequest, service: KeyServiceDep) -> ValidationResponse:
    """Validate and consume a key given in the JSON body."""
    if not body.key:
        return _missing_key_response()
    return ValidationResponse.from_outcome(await service.redeem(body.key))


@validate_router.post("/generate", response_model=GenerateResponse)
async def generate_key(service: KeyServiceDep, body: GenerateRequest | None = None) -> GenerateResponse:
    """Issue a segmented key for external scripts."""
    try:
        record = await service.issue(
            name=(body.name if body else None) or "Generated Key",
            key_format=KeyFormat.SEGMENTED,
        )
    except GenerationFailedError as e:
        logger.error(f"Key generation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate key",
        )

    return GenerateResponse(
        success=True,
        message="Key generated successfully",
        key=record.token,
        expires=record.expires_at,
        name=record.name,
    )


def _missing_key_response() -> ValidationResponse:
    return ValidationResponse(valid=False, status=KeyStatus.NOT_FOUND, message="Key is required")
