import logging

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from api.dependencies import get_context
from api.state import AppContext

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(ctx: AppContext = Depends(get_context)) -> dict:
    """Health check endpoint for container orchestration."""
    health = {
        "status": "healthy",
        "llm_provider": ctx.settings.llm_provider,
        "storage": "postgres" if ctx.db is not None else "in-memory",
    }

    if ctx.db is not None:
        db_health = await ctx.db.health_check()
        health["database"] = db_health
        if db_health["status"] != "healthy":
            health["status"] = "degraded"

    return health


@router.get("/metrics")
async def metrics() -> Response:
    """
    Prometheus scrape endpoint.
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
