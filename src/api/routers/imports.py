import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, model_validator

from api.dependencies import CurrentUser, get_context, get_current_user
from api.state import AppContext
from storage.google_auth import ensure_fresh
from timebeacon.errors import AuthenticationFailure
from timebeacon.metrics import REQUEST_LATENCY_SECONDS, REQUESTS_TOTAL
from timebeacon.models import ImportJobStatus, ImportRequest, Source

router = APIRouter(prefix="/api/v1/import", tags=["import"])
logger = logging.getLogger(__name__)


class _ImportIn(BaseModel):
    start_date: datetime
    end_date: Optional[datetime] = None
    query: Optional[str] = None

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date is not None and _utc(self.end_date) < _utc(self.start_date):
            raise ValueError("end_date must not be before start_date")
        return self


class GmailImportIn(_ImportIn):
    max_emails: int = Field(100, ge=1, le=500)


class CalendarImportIn(_ImportIn):
    calendar_id: str = "primary"
    max_events: int = Field(100, ge=1, le=500)


class DriveImportIn(_ImportIn):
    folder_id: Optional[str] = None
    max_files: int = Field(100, ge=1, le=500)


class ImportResultOut(BaseModel):
    job_id: str
    status: str
    imported_count: int
    processed_count: int
    failed_count: int
    time_entries_created: int
    processing_time_ms: int
    errors: List[str]


def _utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _result(job: ImportJobStatus) -> ImportResultOut:
    return ImportResultOut(
        job_id=job.job_id,
        status=job.status,
        imported_count=job.imported_count,
        processed_count=job.processed_count,
        failed_count=job.failed_count,
        time_entries_created=job.time_entries_created,
        processing_time_ms=job.processing_time_ms,
        errors=job.errors,
    )


async def _run_import(source: Source, request: ImportRequest, ctx: AppContext) -> ImportResultOut:
    start = time.time()
    endpoint = f"/import/{source}"
    try:
        credentials = await ctx.auth_store.get_credentials(request.user_id)
        if credentials is None:
            raise AuthenticationFailure("Google account is not connected")

        if await ensure_fresh(credentials):
            await ctx.auth_store.save_credentials(request.user_id, credentials)

        preferences = await ctx.preferences.get(request.user_id, request.company_id)
        activity_source = await asyncio.to_thread(ctx.source_factory.create, source, credentials, preferences)
        job = await ctx.orchestrator.run(request, activity_source, preferences)
    except AuthenticationFailure as e:
        REQUESTS_TOTAL.labels(endpoint=endpoint, status="unauthorized").inc()
        logger.warning(f"{source} import for {request.user_id} rejected: {e}")
        raise HTTPException(status_code=401, detail=str(e))

    REQUESTS_TOTAL.labels(endpoint=endpoint, status=job.status).inc()
    REQUEST_LATENCY_SECONDS.labels(endpoint=endpoint).observe(time.time() - start)
    return _result(job)


@router.post("/gmail", response_model=ImportResultOut)
async def import_gmail(
    payload: GmailImportIn,
    user: CurrentUser = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> ImportResultOut:
    request = ImportRequest(
        user_id=user.user_id,
        company_id=user.company_id,
        source="gmail",
        start_date=payload.start_date,
        end_date=payload.end_date or datetime.now(timezone.utc),
        query=payload.query,
        max_items=payload.max_emails,
    )
    return await _run_import("gmail", request, ctx)


@router.post("/calendar", response_model=ImportResultOut)
async def import_calendar(
    payload: CalendarImportIn,
    user: CurrentUser = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> ImportResultOut:
    request = ImportRequest(
        user_id=user.user_id,
        company_id=user.company_id,
        source="calendar",
        start_date=payload.start_date,
        end_date=payload.end_date or datetime.now(timezone.utc),
        query=payload.query,
        calendar_id=payload.calendar_id,
        max_items=payload.max_events,
    )
    return await _run_import("calendar", request, ctx)


@router.post("/drive", response_model=ImportResultOut)
async def import_drive(
    payload: DriveImportIn,
    user: CurrentUser = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> ImportResultOut:
    request = ImportRequest(
        user_id=user.user_id,
        company_id=user.company_id,
        source="drive",
        start_date=payload.start_date,
        end_date=payload.end_date or datetime.now(timezone.utc),
        query=payload.query,
        folder_id=payload.folder_id,
        max_items=payload.max_files,
    )
    return await _run_import("drive", request, ctx)


@router.get("/status/{job_id}", response_model=ImportJobStatus)
async def import_status(
    job_id: str,
    user: CurrentUser = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> ImportJobStatus:
    job = await ctx.jobs.get(user.user_id, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Import job not found")
    return job
