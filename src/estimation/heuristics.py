"""Rule-based estimates used when no language model is configured."""
from __future__ import annotations

import math
import re
from typing import Iterable, List, Optional

from llm.schemas import MAX_MINUTES, EstimationResult, ProjectAlternative, ProjectMatchResult, SummaryResult
from timebeacon.models import Project

READING_WPM = 200
PROCESSING_WPM = 100
HEURISTIC_CONFIDENCE = 0.3


def reading_minutes(word_count: int) -> int:
    return math.ceil(word_count / READING_WPM)


def email_minutes(word_count: int) -> int:
    # Reading plus processing, never below 2 or above an hour
    minutes = max(2, reading_minutes(word_count) + math.ceil(word_count / PROCESSING_WPM))
    return min(minutes, 60)


def meeting_minutes(scheduled_minutes: Optional[float]) -> float:
    if not scheduled_minutes or scheduled_minutes < 0:
        return 60
    return min(scheduled_minutes, MAX_MINUTES)


def document_minutes(word_count: int) -> float:
    return max(15, min(180, word_count / READING_WPM))


def estimate(activity_type: str, content: str, scheduled_minutes: Optional[float] = None) -> EstimationResult:
    words = len(content.split())
    if activity_type == "email":
        minutes = float(email_minutes(words))
    elif activity_type == "meeting":
        minutes = float(meeting_minutes(scheduled_minutes))
    elif activity_type == "document":
        minutes = float(document_minutes(words))
    else:
        minutes = 30.0

    minutes = round(minutes)
    return EstimationResult(
        estimated_minutes=minutes,
        confidence_score=HEURISTIC_CONFIDENCE,
        reasoning="Rule-based estimation (no language model configured)",
        min_minutes=round(minutes * 0.5),
        max_minutes=min(MAX_MINUTES, round(minutes * 1.5)),
    )


def _tokens(text: str) -> set:
    return set(re.findall(r"[a-z0-9]+", text.lower()))


def match_project(
    content: str,
    projects: Iterable[Project],
    email_domain: Optional[str] = None,
) -> ProjectMatchResult:
    """Client domain first, then keyword overlap."""
    projects = list(projects)

    if email_domain:
        by_domain = [p for p in projects if p.client_domain and p.client_domain.lower() == email_domain.lower()]
        if by_domain:
            return ProjectMatchResult(
                matched_project_id=by_domain[0].id,
                confidence_score=0.9,
                reasoning=f"Matched by email domain: {email_domain}",
                alternatives=[
                    ProjectAlternative(project_id=p.id, confidence_score=0.8) for p in by_domain[1:4]
                ],
            )

    words = _tokens(content)
    scored: List[tuple] = []
    for p in projects:
        hits = len(words & {k.lower() for k in p.keywords})
        if hits:
            scored.append((hits, p))
    scored.sort(key=lambda pair: pair[0], reverse=True)

    if not scored:
        return ProjectMatchResult(
            matched_project_id=None,
            confidence_score=0.0,
            reasoning="No rule-based matches found",
            alternatives=[],
        )

    best_hits, best = scored[0]
    return ProjectMatchResult(
        matched_project_id=best.id,
        confidence_score=min(0.8, best_hits / 5),
        reasoning=f"Matched by keywords: {best_hits} matches found",
        alternatives=[
            ProjectAlternative(project_id=p.id, confidence_score=min(0.7, hits / 5))
            for hits, p in scored[1:4]
        ],
    )


def summarize(content: str, max_length: int) -> SummaryResult:
    text = " ".join(content.split())
    if len(text) > max_length:
        text = text[: max(0, max_length - 3)] + "..."
    return SummaryResult(summary=text, key_points=[], confidence_score=0.1)
