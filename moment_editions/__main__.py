"""Entry point for the edition API server"""
import json
import logging
import sys
import traceback

import uvicorn

from moment_editions.api.server import create_app
from moment_editions.config import settings
from moment_editions.db import db

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
                    format='%(asctime)s %(levelname)s %(name)s: %(message)s')
logger = logging.getLogger(__name__)

def run() -> None:
    """Initialise the database and serve the API."""
    try:
        db.init()

        # Log config (excluding sensitive data)
        logger.info("Using configuration:")
        safe_config = settings.model_dump(exclude={
            'DB_PASSWORD', 'DATABASE_URL', 'CHAIN_RELAY_API_KEY', 'AWS_ACCESS_KEY_ID', 'AWS_SECRET_ACCESS_KEY'
        })
        logger.info(json.dumps(safe_config, indent=2))

        app = create_app(settings, db)
        uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT, log_level=settings.LOG_LEVEL.lower())

    except Exception as e:
        logger.error(f"Error starting edition API: {e}")
        traceback.print_exc()
        sys.exit(1)

if __name__ == "__main__":
    run()
