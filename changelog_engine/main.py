"""
main.py - Main entry point for the changelog engine service
"""
import logging

import uvicorn

from changelog_engine.api import create_api
from changelog_engine.config import config_manager


def setup_logging(level: str = "INFO"):
    """Setup logging for the engine"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s :: %(message)s",
    )


def main():
    """
    Start the changelog engine server.
    """
    config = config_manager.load_config('env')
    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    api = create_api(config=config)
    app = api.get_app()

    logger.info("Starting changelog engine on %s:%d", config.api_host, config.api_port)
    logger.info("Backend: %s, default mode: %s", config.backend_uri, config.default_mode)

    uvicorn.run(app, host=config.api_host, port=config.api_port)


if __name__ == "__main__":
    main()
