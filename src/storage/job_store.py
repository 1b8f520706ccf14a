from __future__ import annotations

import json
import logging
from typing import Dict, Optional

import asyncpg

from storage.db import Database
from timebeacon.errors import PersistenceFailure
from timebeacon.models import ImportJobStatus

logger = logging.getLogger(__name__)


class InMemoryJobStore:
    def __init__(self):
        self._jobs: Dict[str, ImportJobStatus] = {}

    async def create(self, job: ImportJobStatus) -> None:
        self._jobs[job.job_id] = job.model_copy(deep=True)

    async def save(self, job: ImportJobStatus) -> None:
        self._jobs[job.job_id] = job.model_copy(deep=True)

    async def get(self, user_id: str, job_id: str) -> Optional[ImportJobStatus]:
        job = self._jobs.get(job_id)
        # jobs are only visible to the user that started them
        if job is None or job.user_id != user_id:
            return None
        return job.model_copy(deep=True)


class PostgresJobStore:
    def __init__(self, db: Database):
        self.db = db

    async def create(self, job: ImportJobStatus) -> None:
        try:
            await self.db.execute(
                """
                INSERT INTO import_jobs (job_id, user_id, source, status, started_at)
                VALUES ($1, $2, $3, $4, $5)
                """,
                job.job_id,
                job.user_id,
                job.source,
                job.status,
                job.started_at,
            )
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"job create failed: {e}") from e

    async def save(self, job: ImportJobStatus) -> None:
        try:
            await self.db.execute(
                """
                UPDATE import_jobs SET
                    status = $2,
                    imported_count = $3,
                    processed_count = $4,
                    failed_count = $5,
                    time_entries_created = $6,
                    errors = $7::jsonb,
                    processing_time_ms = $8,
                    completed_at = $9
                WHERE job_id = $1
                """,
                job.job_id,
                job.status,
                job.imported_count,
                job.processed_count,
                job.failed_count,
                job.time_entries_created,
                json.dumps(job.errors),
                job.processing_time_ms,
                job.completed_at,
            )
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Failed to save import job {job.job_id}: {e}")
            raise PersistenceFailure(f"job save failed: {e}") from e

    async def get(self, user_id: str, job_id: str) -> Optional[ImportJobStatus]:
        try:
            row = await self.db.fetchrow(
                "SELECT * FROM import_jobs WHERE job_id::text = $1 AND user_id = $2",
                job_id,
                user_id,
            )
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"job read failed: {e}") from e
        if not row:
            return None

        data = dict(row)
        data["job_id"] = str(data["job_id"])
        errors = data.get("errors") or "[]"
        data["errors"] = json.loads(errors) if isinstance(errors, str) else list(errors)
        return ImportJobStatus(**data)
