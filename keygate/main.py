"""
Main FastAPI application entry point.

Sets up the FastAPI app with:
- CORS middleware
- Loguru logging and API request logging
- The key service (constructed in the lifespan, stored on app.state)
- Optional background sweeper for expired keys
- Health check endpoints
"""

import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from keygate.common.responses import HealthResponse
from keygate.config.deployment_validation import log_deployment_configuration
from keygate.config.logger import setup_logging
from keygate.config.settings import settings
from keygate.features.config.router import router as config_router
from keygate.features.key_sweeper.background_sweeper import key_sweeper
from keygate.features.keys.exceptions import StoreUnavailableError
from keygate.features.keys.router import router as keys_router
from keygate.features.keys.router import validate_router
from keygate.features.keys.service import build_key_service

APP_NAME = "Keygate"
APP_VERSION = "0.1.0"

# Set up logging before anything else
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Builds and initializes the key store, starts the sweeper, and on shutdown
    stops the sweeper and closes the store.

    Args:
        app: FastAPI application instance.

    Yields:
        Control to the application runtime.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {APP_NAME}")
    logger.info(f"HTTP Server: http://0.0.0.0:{settings.port}")
    logger.info("=" * 60)

    service = build_key_service(settings)
    await service.store.init()
    app.state.key_service = service

    log_deployment_configuration()

    sweeper_task = None
    if settings.sweeper.interval > 0:
        sweeper_task = asyncio.create_task(key_sweeper(service, settings.sweeper.interval))
        logger.info("Key sweeper task created")

    yield

    # Shutdown
    logger.info("Shutting down application")

    if sweeper_task is not None and not sweeper_task.done():
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            logger.info("Key sweeper cancelled")

    await service.store.close()
    app.state.key_service = None
    logger.info("Key store closed")


# Create FastAPI app
app = FastAPI(
    title=APP_NAME,
    description="Single-use access key issuance and redemption",
    version=APP_VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_api_requests(request: Request, call_next):
    """Log ``METHOD path status in Nms`` for API calls."""
    start = time.perf_counter()
    response = await call_next(request)
    path = request.url.path
    if path.startswith("/api"):
        duration_ms = (time.perf_counter() - start) * 1000
        # Log the route template rather than the path: it may carry a token
        route = request.scope.get("route")
        template = getattr(route, "path", path)
        logger.info(f"{request.method} {template} {response.status_code} in {duration_ms:.0f}ms")
    return response


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    """Persistence failures surface as 503; the caller decides whether to retry."""
    logger.error(
        "Key store unavailable",
        extra={"path": request.url.path, "error": str(exc)},
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Key store unavailable"},
    )


# === ROUTERS ===
app.include_router(keys_router, prefix="/api")
app.include_router(validate_router, prefix="/api")
app.include_router(config_router, prefix="/api")


# Health check endpoints
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    """Detailed health check endpoint."""
    logger.debug("Health endpoint called")
    return HealthResponse(status="ok", version=APP_VERSION, app_name=APP_NAME)


# Root endpoint
@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "app": APP_NAME,
        "version": APP_VERSION,
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    # Auto-reload in development only
    reload = settings.keygate_env == "development"

    uvicorn.run(
        "keygate.main:app",
        host="0.0.0.0",  # Listen on all interfaces (required for Docker)
        port=settings.port,
        reload=reload,
        log_config=None,  # Disable uvicorn logging (we use loguru)
    )
