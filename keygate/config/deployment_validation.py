"""Deployment configuration summary logged at startup."""

from loguru import logger

from keygate.config.settings import settings


def log_deployment_configuration() -> None:
    """Log deployment configuration during application startup.

    Called from main.py lifespan function.
    """
    logger.info("-" * 80)

    if settings.keygate_env == "production":
        logger.info("🔒 PRODUCTION MODE")
    else:
        logger.info("🔧 DEVELOPMENT MODE")
    logger.info("")

    _log_store_config()
    _log_key_policy()

    logger.info("-" * 80)


def _log_store_config() -> None:
    """Log which store backend is active and where it persists."""
    backend = settings.store_backend
    if backend == "sqlite":
        logger.info(f"Key store:      sqlite ({settings.database.sqlite_path})")
    elif backend == "json":
        logger.info(f"Key store:      json ({settings.database.json_path_resolved})")
    else:
        logger.info("Key store:      memory")
        logger.info("⚠️  Keys are lost on restart (memory backend)")

    logger.info(f"CORS Origins:   {', '.join(settings.cors_origins)}")


def _log_key_policy() -> None:
    """Log the issuance rules and sweep schedule."""
    keys = settings.keys
    logger.info(f"Key validity:   {keys.validity_hours}h, {keys.default_max_uses} use(s) by default")
    logger.info(
        f"Token length:   default {keys.default_length}, "
        f"clamped to [{keys.min_length}, {keys.max_length}]"
    )

    if settings.sweeper.interval > 0:
        logger.info(f"✅ Background sweep every {settings.sweeper.interval}s")
    else:
        logger.info("Background sweep disabled")

    if settings.search_enabled:
        logger.info(f"✅ Key search enabled (limit {keys.search_result_limit})")
    else:
        logger.info("Key search disabled (KEYGATE_SEARCH_SECRET not set)")
