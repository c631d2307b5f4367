"""FastAPI application factory"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from moment_editions.api.dependencies import build_services
from moment_editions.api.routes import admin_router, diagnostics_router, router, system_router
from moment_editions.config import Settings, settings as default_settings
from moment_editions.db import Database, db as default_db
from moment_editions.services.chain import ChainGateway
from moment_editions.services.publisher import MetadataPublisher

logger = logging.getLogger(__name__)

def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None,
               gateway: Optional[ChainGateway] = None,
               publisher: Optional[MetadataPublisher] = None) -> FastAPI:
    """
    Build the API application.

    Collaborators default to the module-level settings and database; tests
    pass their own. The database is initialised here if it is not already.
    """
    settings = settings or default_settings
    database = database or default_db
    if not database.is_initialized:
        database.init()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Moment editions API starting")
        yield
        logger.info("Moment editions API shutting down")
        database.dispose()

    app = FastAPI(
        title="Moment Editions API",
        description="Rarity scoring, edition creation, mint recording and chain reconciliation",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.services = build_services(settings, database, gateway, publisher)

    app.include_router(router)
    app.include_router(admin_router)
    app.include_router(system_router)
    if settings.ENABLE_DIAGNOSTICS:
        logger.info("Diagnostics routes enabled")
        app.include_router(diagnostics_router)
    return app
