"""
Process entry point: initialize storage, then serve the API with uvicorn.

Usage:
    python -m portfolio_backend
    PORT=8080 portfolio-backend
"""

from __future__ import annotations

import logging
import signal

import uvicorn

from portfolio_backend.app import app
from portfolio_backend.config import get_settings
from portfolio_backend.dependencies import close_db_client, init_db_client

logger = logging.getLogger(__name__)

ENDPOINTS = (
    ("GET", "/health", "Health check"),
    ("GET", "/users", "Get all users"),
    ("POST", "/users", "Create user"),
    ("GET", "/projects", "Get all projects"),
    ("POST", "/projects", "Create project"),
)


def _exit_on_sigterm(signum, frame):
    # uvicorn re-raises the signal after its own graceful shutdown.
    raise SystemExit(0)


def main() -> int:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        init_db_client(settings)
    except Exception:
        logger.exception("Failed to initialize database, exiting.")
        return 1

    logger.info("Server running on http://localhost:%d", settings.port)
    logger.info("Available endpoints:")
    for method, path, description in ENDPOINTS:
        logger.info("  %s %s%s - %s", method, settings.api_prefix, path, description)

    previous_sigterm = signal.signal(signal.SIGTERM, _exit_on_sigterm)
    try:
        uvicorn.run(
            app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
        )
    except SystemExit as exc:
        # uvicorn exits on bind errors such as an address already in use.
        if exc.code:
            logger.error(
                "Server failed to start on port %d. Either stop the process using it "
                "or set a different PORT environment variable.",
                settings.port,
            )
            return 1
    except KeyboardInterrupt:
        pass
    finally:
        signal.signal(signal.SIGTERM, previous_sigterm)
        close_db_client()

    logger.info("Server stopped.")
    return 0
