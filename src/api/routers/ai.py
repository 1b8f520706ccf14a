import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, Field

from api.dependencies import CurrentUser, get_context, get_current_user
from api.state import AppContext
from timebeacon.errors import ModelRequestFailed, ModelResponseInvalid
from timebeacon.metrics import REQUEST_LATENCY_SECONDS, REQUESTS_TOTAL
from timebeacon.models import ContentType, Project

router = APIRouter(prefix="/api/v1/ai", tags=["ai"])
logger = logging.getLogger(__name__)


class EstimateDurationIn(BaseModel):
    content: str = Field(..., min_length=1)
    activity_type: ContentType
    context: Optional[Dict[str, Any]] = None


class ProjectIn(BaseModel):
    id: str
    name: str
    keywords: List[str] = Field(default_factory=list)


class MatchProjectIn(BaseModel):
    content: str = Field(..., min_length=1)
    # defaults to the user's company projects when omitted
    projects: Optional[List[ProjectIn]] = None
    email_domain: Optional[str] = None
    attendees: Optional[List[str]] = None


class SummarizeIn(BaseModel):
    content: str = Field(..., min_length=1)
    content_type: ContentType
    max_length: int = Field(100, ge=10, le=1000)


async def _call_model(endpoint: str, func: Callable, *args) -> Any:
    start = time.time()
    try:
        result = await asyncio.to_thread(func, *args)
    except ModelResponseInvalid as e:
        REQUESTS_TOTAL.labels(endpoint=endpoint, status="invalid_response").inc()
        raise HTTPException(status_code=502, detail=str(e))
    except ModelRequestFailed as e:
        REQUESTS_TOTAL.labels(endpoint=endpoint, status="model_unavailable").inc()
        logger.error(f"{endpoint}: {e}")
        raise HTTPException(status_code=503, detail=str(e))

    REQUESTS_TOTAL.labels(endpoint=endpoint, status="ok").inc()
    REQUEST_LATENCY_SECONDS.labels(endpoint=endpoint).observe(time.time() - start)
    return result


@router.post("/estimate-duration")
async def estimate_duration(
    payload: EstimateDurationIn,
    user: CurrentUser = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> dict:
    result = await _call_model(
        "/ai/estimate-duration",
        ctx.engine.estimate_duration,
        payload.content,
        payload.activity_type,
        payload.context,
    )
    return result.model_dump()


@router.post("/match-project")
async def match_project(
    payload: MatchProjectIn,
    user: CurrentUser = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> dict:
    if payload.projects is not None:
        projects = [Project(**p.model_dump()) for p in payload.projects]
    else:
        projects = await ctx.projects.list_projects(user.user_id, user.company_id)

    result = await _call_model(
        "/ai/match-project",
        ctx.engine.match_project,
        payload.content,
        projects,
        payload.email_domain,
        payload.attendees,
    )
    return result.model_dump()


@router.post("/summarize")
async def summarize(
    payload: SummarizeIn,
    user: CurrentUser = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> dict:
    result = await _call_model(
        "/ai/summarize",
        ctx.engine.summarize,
        payload.content,
        payload.content_type,
        payload.max_length,
    )
    return result.model_dump()


@router.post("/analyze/{content_type}")
async def analyze(
    content_type: ContentType,
    data: Dict[str, Any] = Body(...),
    user: CurrentUser = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> dict:
    """Detailed time breakdown for one email, meeting or document."""
    if not ctx.engine.uses_model:
        raise HTTPException(status_code=503, detail="Analysis needs a language model, none is configured")
    result = await _call_model(f"/ai/analyze/{content_type}", ctx.engine.analyze, content_type, data)
    return result.model_dump()
