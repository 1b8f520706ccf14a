"""
Import orchestration: list a source, then load, estimate, match and write
each item with bounded concurrency.

The orchestrator is the only writer of an import job's counters. Every
listed item ends up either processed (created or already present) or
failed; Gmail items dropped by the user's filters are neither, and are not
counted as imported.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from estimation.engine import EstimationEngine
from importer.writer import TimeEntryWriter
from integration.base import ActivityRef, ActivitySource, is_retryable_source_error
from timebeacon.errors import AuthenticationFailure, SourceFetchFailure, TimeBeaconError
from timebeacon.metrics import ITEMS_FAILED_TOTAL, ITEMS_IMPORTED_TOTAL, TIME_ENTRIES_CREATED_TOTAL
from timebeacon.models import AIPreferences, ImportJobStatus, ImportRequest, Project, RawActivityItem
from timebeacon.retry import retry_call

logger = logging.getLogger(__name__)

FAILURE_REASONS = {
    "SourceFetchFailure": "fetch",
    "ModelRequestFailed": "model_request",
    "ModelResponseInvalid": "model_response",
    "PersistenceFailure": "persistence",
}


def filtered_out(item: RawActivityItem, preferences: AIPreferences) -> bool:
    if item.source != "gmail":
        return False
    labels = item.metadata.get("labels") or []
    if preferences.only_opened_emails and item.metadata.get("is_unread"):
        return True
    return preferences.skip_promotional and "CATEGORY_PROMOTIONS" in labels


class ImportOrchestrator:
    def __init__(
        self,
        engine: EstimationEngine,
        writer: TimeEntryWriter,
        jobs,
        projects,
        concurrency: int = 5,
        max_errors: int = 20,
        source_attempts: int = 3,
        source_backoff_s: float = 0.5,
    ):
        self.engine = engine
        self.writer = writer
        self.jobs = jobs
        self.projects = projects
        self.concurrency = concurrency
        self.max_errors = max_errors
        self.source_attempts = source_attempts
        self.source_backoff_s = source_backoff_s

    async def run(
        self,
        request: ImportRequest,
        source: ActivitySource,
        preferences: Optional[AIPreferences] = None,
    ) -> ImportJobStatus:
        """
        Run one import to completion and return its final job status.

        Raises AuthenticationFailure (after marking the job failed) when the
        source rejects the user's credentials at any point.
        """
        preferences = preferences or AIPreferences()
        job = ImportJobStatus(user_id=request.user_id, source=request.source)
        await self.jobs.create(job)
        started = time.perf_counter()
        logger.info(f"Import {job.job_id} started: {request.source} for user {request.user_id}")

        try:
            projects = await self.projects.list_projects(request.user_id, request.company_id)
            try:
                refs = await asyncio.to_thread(self._with_source_retry, source.list_refs, request)
            except SourceFetchFailure as e:
                logger.error(f"Import {job.job_id}: listing failed: {e}")
                self._record_error(job, "list", e)
                refs = []

            await self._process_all(job, request, source, refs, projects, preferences)
        except AuthenticationFailure as e:
            logger.error(f"Import {job.job_id} failed: {e}")
            self._record_error(job, "auth", e)
            await self._finish(job, started, "failed")
            raise
        except Exception as e:
            logger.exception(f"Import {job.job_id} failed")
            self._record_error(job, "import", f"{type(e).__name__}: {e}")
            await self._finish(job, started, "failed")
            raise

        await self._finish(job, started, "completed")
        logger.info(
            f"Import {job.job_id} completed: imported={job.imported_count} processed={job.processed_count} "
            f"failed={job.failed_count} created={job.time_entries_created} in {job.processing_time_ms}ms"
        )
        return job

    async def _process_all(
        self,
        job: ImportJobStatus,
        request: ImportRequest,
        source: ActivitySource,
        refs: List[ActivityRef],
        projects: Sequence[Project],
        preferences: AIPreferences,
    ) -> None:
        semaphore = asyncio.Semaphore(self.concurrency)
        auth_failures: List[AuthenticationFailure] = []

        async def process(ref: ActivityRef) -> None:
            async with semaphore:
                # one rejected credential fails the whole import; don't start new items
                if auth_failures:
                    return
                try:
                    await self._process_item(job, request, source, ref, projects, preferences)
                except AuthenticationFailure as e:
                    auth_failures.append(e)

        await asyncio.gather(*(process(ref) for ref in refs))
        if auth_failures:
            raise auth_failures[0]

    async def _process_item(
        self,
        job: ImportJobStatus,
        request: ImportRequest,
        source: ActivitySource,
        ref: ActivityRef,
        projects: Sequence[Project],
        preferences: AIPreferences,
    ) -> None:
        try:
            item = await asyncio.to_thread(self._with_source_retry, source.load, ref)
        except AuthenticationFailure:
            raise
        except Exception as e:
            job.imported_count += 1
            self._fail(job, ref.external_id, e)
            await self._save(job)
            return

        if filtered_out(item, preferences):
            logger.debug(f"Skipping {item.source}/{item.external_id}: excluded by preferences")
            return

        job.imported_count += 1
        ITEMS_IMPORTED_TOTAL.labels(source=item.source).inc()

        try:
            estimate = await asyncio.to_thread(self.engine.estimate_item, item)
            match = None
            if projects:
                match = await asyncio.to_thread(self.engine.match_item, item, projects)
            entry = self.writer.build_entry(
                request.user_id, request.company_id, item, estimate, match, projects, preferences
            )
            created = await self.writer.write(entry)
        except AuthenticationFailure:
            raise
        except Exception as e:
            self._fail(job, item.external_id, e)
        else:
            job.processed_count += 1
            if created:
                job.time_entries_created += 1
                TIME_ENTRIES_CREATED_TOTAL.labels(source=item.source).inc()

        await self._save(job)

    def _with_source_retry(self, func, *args):
        return retry_call(
            func,
            *args,
            attempts=self.source_attempts,
            initial_delay_s=self.source_backoff_s,
            is_retryable=is_retryable_source_error,
        )

    def _fail(self, job: ImportJobStatus, external_id: str, error: Exception) -> None:
        job.failed_count += 1
        reason = FAILURE_REASONS.get(type(error).__name__, "other")
        ITEMS_FAILED_TOTAL.labels(source=job.source, reason=reason).inc()
        if isinstance(error, TimeBeaconError):
            logger.warning(f"Import {job.job_id}: item {external_id} failed: {error}")
        else:
            logger.error(f"Import {job.job_id}: item {external_id} failed unexpectedly", exc_info=error)
            error = f"{type(error).__name__}: {error}"
        self._record_error(job, external_id, error)

    def _record_error(self, job: ImportJobStatus, external_id: str, error) -> None:
        if len(job.errors) < self.max_errors:
            job.errors.append(f"{external_id}: {error}")

    async def _save(self, job: ImportJobStatus) -> None:
        try:
            await self.jobs.save(job)
        except TimeBeaconError as e:
            # progress snapshots are advisory; the final save is not
            logger.warning(f"Could not save progress of import {job.job_id}: {e}")

    async def _finish(self, job: ImportJobStatus, started: float, status: str) -> None:
        job.status = status
        job.processing_time_ms = int((time.perf_counter() - started) * 1000)
        job.completed_at = datetime.now(timezone.utc)
        await self.jobs.save(job)
