"""
Rankstream - Application Entry Point
====================================

Bootstrap
---------
- Config validation
- uvicorn serving the FastAPI app; the app's lifespan hook brings up
  ConfigManager, database, Redis and the service container, and tears them
  down in reverse order on SIGTERM / SIGINT
"""

import sys

import uvicorn

from rankstream.core.config.config import Config
from rankstream.core.http.app import create_app
from rankstream.core.logging.logger import get_logger, shutdown_logging

logger = get_logger(__name__)


def main() -> None:
    logger.info("========== RANKSTREAM STARTUP ==========")

    try:
        Config.validate()
        logger.info("✓ Configuration validated")
    except ValueError as exc:
        logger.critical(f"Configuration validation failed: {exc}")
        sys.exit(1)

    app = create_app()

    # uvicorn installs its own SIGTERM/SIGINT handlers and runs the lifespan
    # shutdown before returning.
    uvicorn.run(
        app,
        host=Config.HTTP_HOST,
        port=Config.HTTP_PORT,
        log_config=None,
        ws_ping_interval=None,
    )
    logger.info("========== SHUTDOWN COMPLETE ==========")
    shutdown_logging()


if __name__ == "__main__":
    main()
