from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional, Sequence

from pydantic import ValidationError

from llm.schemas import EstimationResult, ProjectMatchResult
from timebeacon.errors import ModelResponseInvalid, PersistenceFailure
from timebeacon.models import AIPreferences, Project, RawActivityItem, TimeEntry
from timebeacon.retry import async_retry_call

logger = logging.getLogger(__name__)

DESCRIPTION_LIMITS = {"brief": 80, "standard": 160, "detailed": 500}
SHOWN_PARTICIPANTS = 2


def describe(item: RawActivityItem, length: str = "standard") -> str:
    title = item.title or "Untitled"
    if item.content_type == "email" and item.sender:
        text = f"{title} (from {item.sender})"
    elif item.content_type == "meeting" and item.participants:
        shown = ", ".join(item.participants[:SHOWN_PARTICIPANTS])
        rest = len(item.participants) - SHOWN_PARTICIPANTS
        text = f"{title} with {shown}" + (f" +{rest} others" if rest > 0 else "")
    else:
        text = title

    limit = DESCRIPTION_LIMITS.get(length, DESCRIPTION_LIMITS["standard"])
    return text if len(text) <= limit else text[: limit - 3] + "..."


def should_auto_approve(estimate: EstimationResult, preferences: AIPreferences) -> bool:
    return preferences.auto_approve_enabled and estimate.confidence_score * 100 >= preferences.confidence_threshold


class TimeEntryWriter:
    """Maps an estimated activity item onto a TimeEntry and persists it once."""

    def __init__(self, store, attempts: int = 2):
        self.store = store
        self.attempts = attempts

    def build_entry(
        self,
        user_id: str,
        company_id: Optional[str],
        item: RawActivityItem,
        estimate: EstimationResult,
        match: Optional[ProjectMatchResult] = None,
        projects: Sequence[Project] = (),
        preferences: Optional[AIPreferences] = None,
    ) -> TimeEntry:
        preferences = preferences or AIPreferences()
        project = None
        if match is not None and match.matched_project_id is not None:
            project = next((p for p in projects if p.id == match.matched_project_id), None)

        start = item.occurred_at
        if item.content_type == "meeting" and item.ended_at is not None:
            end = item.ended_at
        else:
            try:
                end = start + timedelta(minutes=estimate.estimated_minutes)
            except OverflowError as e:
                raise ModelResponseInvalid(f"estimate cannot be placed on the calendar: {e}")

        try:
            return TimeEntry(
                user_id=user_id,
                company_id=company_id,
                date=start.date(),
                start_time=start,
                end_time=end,
                duration_hours=round(estimate.estimated_minutes / 60, 2),
                project=project.name if project else None,
                project_id=project.id if project else None,
                client=project.client if project else None,
                description=describe(item, preferences.description_length),
                status="approved" if should_auto_approve(estimate, preferences) else "pending_review",
                source=item.source,
                external_item_id=item.external_id,
                billable=not project.client_internal if project else True,
                automated=True,
                tags=[item.content_type, item.source, "ai_processed"],
                confidence_score=estimate.confidence_score,
                estimated_minutes=estimate.estimated_minutes,
            )
        except ValidationError as e:
            raise PersistenceFailure(f"cannot build time entry: {e}")

    async def write(self, entry: TimeEntry) -> bool:
        """Insert unless the item was already imported. True when a row was created."""
        created = await async_retry_call(
            self.store.insert_if_absent,
            entry,
            attempts=self.attempts,
            is_retryable=lambda e: isinstance(e, PersistenceFailure),
        )
        if not created:
            logger.debug(f"Time entry for {entry.source}/{entry.external_item_id} already exists")
        return created
