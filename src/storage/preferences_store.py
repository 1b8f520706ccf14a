from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

import asyncpg

from storage.db import Database
from timebeacon.errors import PersistenceFailure
from timebeacon.models import AIPreferences

logger = logging.getLogger(__name__)

PREFERENCE_COLUMNS = (
    "confidence_threshold",
    "auto_approve_enabled",
    "description_length",
    "only_opened_emails",
    "skip_promotional",
)


def _key(user_id: str, company_id: Optional[str]) -> Tuple[str, str]:
    return (user_id, company_id or "")


class InMemoryPreferencesStore:
    def __init__(self):
        self._prefs: Dict[Tuple[str, str], AIPreferences] = {}

    async def get(self, user_id: str, company_id: Optional[str] = None) -> AIPreferences:
        # first read materializes the defaults
        return self._prefs.setdefault(_key(user_id, company_id), AIPreferences())

    async def save(self, user_id: str, company_id: Optional[str], prefs: AIPreferences) -> AIPreferences:
        self._prefs[_key(user_id, company_id)] = prefs
        return prefs


class PostgresPreferencesStore:
    def __init__(self, db: Database):
        self.db = db

    async def get(self, user_id: str, company_id: Optional[str] = None) -> AIPreferences:
        defaults = AIPreferences()
        try:
            row = await self.db.fetchrow(
                f"""
                INSERT INTO ai_preferences (user_id, company_id, {", ".join(PREFERENCE_COLUMNS)})
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (user_id, company_id) DO UPDATE SET user_id = EXCLUDED.user_id
                RETURNING {", ".join(PREFERENCE_COLUMNS)}
                """,
                *_key(user_id, company_id),
                *(getattr(defaults, c) for c in PREFERENCE_COLUMNS),
            )
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"preferences read failed: {e}") from e
        return AIPreferences(**dict(row))

    async def save(self, user_id: str, company_id: Optional[str], prefs: AIPreferences) -> AIPreferences:
        try:
            await self.db.execute(
                f"""
                INSERT INTO ai_preferences (user_id, company_id, {", ".join(PREFERENCE_COLUMNS)})
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (user_id, company_id) DO UPDATE SET
                    confidence_threshold = EXCLUDED.confidence_threshold,
                    auto_approve_enabled = EXCLUDED.auto_approve_enabled,
                    description_length = EXCLUDED.description_length,
                    only_opened_emails = EXCLUDED.only_opened_emails,
                    skip_promotional = EXCLUDED.skip_promotional,
                    updated_at = NOW()
                """,
                *_key(user_id, company_id),
                *(getattr(prefs, c) for c in PREFERENCE_COLUMNS),
            )
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Failed to save AI preferences for {user_id}: {e}")
            raise PersistenceFailure(f"preferences write failed: {e}") from e
        logger.info(f"Saved AI preferences for user {user_id}")
        return prefs
