from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


Source = Literal["gmail", "calendar", "drive"]
ContentType = Literal["email", "meeting", "document"]
EntryStatus = Literal["pending_review", "approved", "rejected"]
JobState = Literal["running", "completed", "failed"]
DescriptionLength = Literal["brief", "standard", "detailed"]


def _as_utc(value: datetime) -> datetime:
    # naive timestamps from clients are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ImportRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    company_id: Optional[str] = None
    source: Source

    start_date: datetime
    end_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    query: Optional[str] = None
    calendar_id: str = "primary"
    folder_id: Optional[str] = None

    max_items: int = Field(100, ge=1, le=500)

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_tz(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @model_validator(mode="after")
    def check_range(self) -> "ImportRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class RawActivityItem(BaseModel):
    """One email, calendar event or file pulled from a source.

    `external_id` is the provider's own id and is what makes re-imports
    idempotent.
    """

    model_config = ConfigDict(frozen=True)

    source: Source
    external_id: str = Field(..., min_length=1)
    content_type: ContentType

    title: str = ""
    content: str = ""
    occurred_at: datetime
    ended_at: Optional[datetime] = None

    participants: List[str] = Field(default_factory=list)
    sender: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def word_count(self) -> int:
        return len(self.content.split())

    @property
    def email_domain(self) -> Optional[str]:
        if not self.sender or "@" not in self.sender:
            return None
        return self.sender.rsplit("@", 1)[1].strip(" >").lower() or None


class Project(BaseModel):
    id: str
    name: str
    keywords: List[str] = Field(default_factory=list)

    client: Optional[str] = None
    client_domain: Optional[str] = None
    client_internal: bool = False


class TimeEntry(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    company_id: Optional[str] = None

    date: date
    start_time: datetime
    end_time: datetime
    duration_hours: float = Field(..., ge=0)

    project: Optional[str] = None
    project_id: Optional[str] = None
    client: Optional[str] = None
    description: str = ""

    status: EntryStatus = "pending_review"
    source: Source
    external_item_id: str

    billable: bool = True
    automated: bool = True
    tags: List[str] = Field(default_factory=list)

    confidence_score: Optional[float] = Field(None, ge=0, le=1)
    estimated_minutes: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def estimate_fields_together(self) -> "TimeEntry":
        if (self.confidence_score is None) != (self.estimated_minutes is None):
            raise ValueError("confidence_score and estimated_minutes must be set together")
        if self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self


class ImportJobStatus(BaseModel):
    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    source: Source
    status: JobState = "running"

    imported_count: int = 0
    processed_count: int = 0
    failed_count: int = 0
    time_entries_created: int = 0
    errors: List[str] = Field(default_factory=list)
    processing_time_ms: int = 0

    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def finished(self) -> bool:
        return self.status != "running"


class AIPreferences(BaseModel):
    confidence_threshold: int = Field(80, ge=0, le=100)
    auto_approve_enabled: bool = False
    description_length: DescriptionLength = "standard"
    only_opened_emails: bool = True
    skip_promotional: bool = True


class AIPreferencesUpdate(BaseModel):
    """Partial update; unknown keys are rejected so typos don't silently no-op."""

    model_config = ConfigDict(extra="forbid")

    confidence_threshold: Optional[int] = Field(None, ge=0, le=100)
    auto_approve_enabled: Optional[bool] = None
    description_length: Optional[DescriptionLength] = None
    only_opened_emails: Optional[bool] = None
    skip_promotional: Optional[bool] = None

    def apply(self, current: AIPreferences) -> AIPreferences:
        return current.model_copy(update=self.model_dump(exclude_none=True))
