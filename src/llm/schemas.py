"""Response schemas for every prompt template.

Every field is required: a response that parses as JSON but leaves one out
is rejected instead of being filled with a default. Out-of-range values
(confidence outside [0, 1], minutes outside 0..one day, an estimate
outside its own min/max bounds) fail validation too.
"""
from __future__ import annotations
from typing import Annotated, Optional, List
from pydantic import BaseModel, ConfigDict, Field, model_validator

# One activity never accounts for more than a day
MAX_MINUTES = 24 * 60

Minutes = Annotated[float, Field(ge=0, le=MAX_MINUTES)]
Confidence = Annotated[float, Field(ge=0, le=1)]


class _ModelResponse(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class EstimationResult(_ModelResponse):
    estimated_minutes: Minutes
    confidence_score: Confidence
    reasoning: str
    min_minutes: Minutes
    max_minutes: Minutes

    @model_validator(mode="after")
    def check_bounds(self) -> "EstimationResult":
        if not self.min_minutes <= self.estimated_minutes <= self.max_minutes:
            raise ValueError("estimated_minutes must lie within min_minutes..max_minutes")
        return self


class ProjectAlternative(_ModelResponse):
    project_id: str
    confidence_score: Confidence


class ProjectMatchResult(_ModelResponse):
    matched_project_id: Optional[str] = Field(...)
    confidence_score: Confidence
    reasoning: str
    alternatives: List[ProjectAlternative] = Field(..., max_length=3)


class SummaryResult(_ModelResponse):
    summary: str
    key_points: List[str]
    confidence_score: Confidence


class EmailAnalysis(_ModelResponse):
    read_time_minutes: Minutes
    compose_time_minutes: Minutes
    total_estimated_minutes: Minutes
    confidence_score: Confidence
    complexity_factors: List[str]


class MeetingAnalysis(_ModelResponse):
    productive_minutes: Minutes
    overhead_minutes: Minutes
    prep_time_minutes: Minutes
    followup_time_minutes: Minutes
    efficiency_score: Confidence
    reasoning: str


class DocumentAnalysis(_ModelResponse):
    active_work_minutes: Minutes
    research_minutes: Minutes
    editing_minutes: Minutes
    collaboration_minutes: Minutes
    total_estimated_minutes: Minutes
    confidence_score: Confidence
