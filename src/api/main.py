import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from api.routers import ai, imports, ops, preferences, time_entries
from api.state import build_context, close_context
from estimation.engine import EstimationEngine
from integration.source_factory import SourceFactory
from timebeacon.config import Settings

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[EstimationEngine] = None,
    source_factory: Optional[SourceFactory] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Settings default to the environment and are read when the app starts,
    not at import time. engine and source_factory replace the configured
    ones (tests).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx = await build_context(settings or Settings.from_env(), engine=engine, source_factory=source_factory)
        app.state.ctx = ctx
        logger.info("TimeBeacon service started")
        try:
            yield
        finally:
            await close_context(ctx)
            logger.info("TimeBeacon service stopped")

    app = FastAPI(title="TimeBeacon intelligent service", lifespan=lifespan)
    app.include_router(ops.router)
    app.include_router(imports.router)
    app.include_router(ai.router)
    app.include_router(preferences.router)
    app.include_router(time_entries.router)
    return app


app = create_app()
