"""FastAPI dependencies for the key endpoints."""

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from loguru import logger

from keygate.config.settings import settings
from keygate.features.keys.service import KeyService


def get_key_service(request: Request) -> KeyService:
    """Return the service constructed in the application lifespan."""
    service = getattr(request.app.state, "key_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Key service not initialized",
        )
    return service


KeyServiceDep = Annotated[KeyService, Depends(get_key_service)]


async def sweep_before_request(service: KeyServiceDep) -> None:
    """Remove expired keys before serving a listing or search."""
    if settings.sweeper.sweep_on_request:
        await service.sweep_expired()


def require_search_secret(
    x_search_secret: Annotated[str | None, Header()] = None,
) -> None:
    """Gate the search endpoint behind the shared secret.

    Raises:
        HTTPException: 503 when search is not configured, 401 when the header
            is missing, 403 when it does not match.
    """
    expected = settings.search_secret
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Key search is disabled",
        )
    if x_search_secret is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Search-Secret header",
        )
    if not secrets.compare_digest(x_search_secret.encode(), expected.encode()):
        logger.warning("Rejected key search with wrong secret")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid search secret",
        )
