"""Background sweeper for expired keys.

This module implements an async infinite loop that calls
``KeyService.sweep_expired`` every ``interval`` seconds.

Sweeps are idempotent and serialize with consumption inside the store, so
the loop needs no coordination with request handlers.
"""

import asyncio

from loguru import logger

from keygate.features.keys.service import KeyService


async def key_sweeper(service: KeyService, interval: float) -> None:
    """Background task that removes expired keys.

    Error Handling:
        - Store errors: Log and continue (retry on next cycle)
        - Cancellation: Log and re-raise for graceful shutdown
    """
    logger.info(
        "Starting key sweeper",
        extra={"interval": interval, "backend": service.store.backend_name},
    )

    try:
        while True:
            # Sleep first (startup already serves a fresh store)
            await asyncio.sleep(interval)

            try:
                await sweep_once(service)
            except Exception as e:
                logger.error(
                    "Error in sweep cycle",
                    extra={
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )

    except asyncio.CancelledError:
        logger.info("Key sweeper cancelled, shutting down")
        raise

    finally:
        logger.info("Key sweeper stopped")


async def sweep_once(service: KeyService) -> int:
    """Run one sweep cycle.

    Returns:
        Number of expired keys removed.
    """
    removed = await service.sweep_expired()
    if removed == 0:
        logger.debug("Sweep found no expired keys")
    return removed
