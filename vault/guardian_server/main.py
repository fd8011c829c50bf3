"""
Guardian sync server - main entry point.

This module starts the server with all components:
- HTTP API (FastAPI on uvicorn)
- Tenant catalog and store handle cache
- Checkpoint sweeper loop (WAL -> main database files)

Usage:
    python -m vault.guardian_server.main

Configuration is entirely via environment variables.
See config.py and api/config.py for all available settings.

Invariants:
    - SIGINT/SIGTERM stop new connections, in-flight requests get
      SHUTDOWN_GRACE_SECONDS to finish
    - After the grace period the sweeper stops, a final checkpoint runs
      and every cached store handle is closed
"""

from __future__ import annotations

import logging
import sys

import json_log_formatter
import uvicorn

from .api import create_app
from .config import ServerConfig

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    app = create_app(config=config)

    logger.info(f"Starting Guardian server on {config.http.host}:{config.http.port}")
    uvicorn.run(
        app,
        host=config.http.host,
        port=config.http.port,
        timeout_graceful_shutdown=config.http.shutdown_grace_seconds,
        log_config=None,
    )
    logger.info("Guardian server stopped")


if __name__ == "__main__":
    main()
