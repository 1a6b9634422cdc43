"""
Dependency wiring for the FastAPI app.

The storage handle is a process-wide singleton with an explicit lifecycle:
``init_db_client`` once at startup, ``close_db_client`` once at shutdown.
"""

from __future__ import annotations

import logging
import time

from portfolio_backend.config import Settings, get_settings
from portfolio_backend.db import DbClient, InMemoryDbClient, SqlDbClient

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None


def _build_db_client(settings: Settings) -> DbClient:
    if settings.use_in_memory_backends:
        return InMemoryDbClient()
    return SqlDbClient(
        settings.database_url,
        retry_attempts=settings.db_retry_attempts,
        retry_delay_seconds=settings.db_retry_delay_seconds,
    )


def init_db_client(settings: Settings | None = None) -> DbClient:
    """
    Open storage and create the schema, retrying the whole sequence.

    Makes up to ``settings.init_max_attempts`` attempts, sleeping
    ``settings.init_retry_delay_seconds`` between them. The error from the
    last attempt is re-raised.
    """
    global _db_client
    if _db_client is not None:
        return _db_client

    settings = settings or get_settings()
    attempts = settings.init_max_attempts
    for attempt in range(1, attempts + 1):
        client = _build_db_client(settings)
        try:
            client.initialize()
        except Exception as exc:
            client.close()
            logger.error(
                "Database initialization failed (attempt %d/%d): %s",
                attempt,
                attempts,
                exc,
            )
            if attempt >= attempts:
                raise
            time.sleep(settings.init_retry_delay_seconds)
            continue
        _db_client = client
        logger.info("Database ready")
        break
    return _db_client


def get_db_client() -> DbClient:
    """
    Return the initialized DB client.
    """
    if _db_client is None:
        raise RuntimeError("Database not initialized. Call init_db_client() first.")
    return _db_client


def close_db_client() -> None:
    global _db_client
    if _db_client is None:
        return
    _db_client.close()
    _db_client = None
    logger.info("Database connection closed")
