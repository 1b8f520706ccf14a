from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Tuple

import asyncpg

from storage.db import Database
from timebeacon.errors import PersistenceFailure
from timebeacon.models import TimeEntry

logger = logging.getLogger(__name__)


def _key(entry: TimeEntry) -> Tuple[str, str, str]:
    return (entry.user_id, entry.source, entry.external_item_id)


class InMemoryTimeEntryStore:
    """Process-local store used when USE_DATABASE is off (dev and tests)."""

    def __init__(self):
        self._entries: Dict[Tuple[str, str, str], TimeEntry] = {}
        self._lock = asyncio.Lock()

    async def insert_if_absent(self, entry: TimeEntry) -> bool:
        async with self._lock:
            key = _key(entry)
            if key in self._entries:
                return False
            self._entries[key] = entry
            return True

    async def list_pending(self, user_id: str, limit: int = 100) -> List[TimeEntry]:
        pending = [e for e in self._entries.values() if e.user_id == user_id and e.status == "pending_review"]
        return sorted(pending, key=lambda e: e.start_time, reverse=True)[:limit]

    async def list_for_user(self, user_id: str) -> List[TimeEntry]:
        return [e for e in self._entries.values() if e.user_id == user_id]


class PostgresTimeEntryStore:
    def __init__(self, db: Database):
        self.db = db

    async def insert_if_absent(self, entry: TimeEntry) -> bool:
        """
        Insert the entry unless one already exists for the same external item.

        Returns True when a row was written.
        """
        query = """
            INSERT INTO time_entries (
                id, user_id, company_id, entry_date, start_time, end_time, duration_hours,
                project, project_id, client, description, status, source, external_item_id,
                billable, automated, tags, confidence_score, estimated_minutes
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18, $19)
            ON CONFLICT (user_id, source, external_item_id) DO NOTHING
            RETURNING id
        """
        try:
            inserted = await self.db.fetchval(
                query,
                entry.id,
                entry.user_id,
                entry.company_id,
                entry.date,
                entry.start_time,
                entry.end_time,
                entry.duration_hours,
                entry.project,
                entry.project_id,
                entry.client,
                entry.description,
                entry.status,
                entry.source,
                entry.external_item_id,
                entry.billable,
                entry.automated,
                entry.tags,
                entry.confidence_score,
                entry.estimated_minutes,
            )
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Failed to write time entry for {entry.source}/{entry.external_item_id}: {e}")
            raise PersistenceFailure(f"time entry write failed: {e}") from e
        return inserted is not None

    async def list_pending(self, user_id: str, limit: int = 100) -> List[TimeEntry]:
        try:
            rows = await self.db.fetch(
                """
                SELECT * FROM time_entries
                WHERE user_id = $1 AND status = 'pending_review'
                ORDER BY start_time DESC
                LIMIT $2
                """,
                user_id,
                limit,
            )
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"time entry read failed: {e}") from e
        return [_row_to_entry(row) for row in rows]


def _row_to_entry(row) -> TimeEntry:
    data = dict(row)
    data["id"] = str(data["id"])
    data["date"] = data.pop("entry_date")
    data.pop("created_at", None)
    for field in ("duration_hours", "confidence_score", "estimated_minutes"):
        if data.get(field) is not None:
            data[field] = float(data[field])
    data["tags"] = list(data.get("tags") or [])
    return TimeEntry(**data)
