import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel

from estimation import heuristics
from estimation.prompts import (
    ANALYSIS_BY_CONTENT_TYPE,
    DURATION_ESTIMATION,
    PROJECT_MATCHING,
    SUMMARIZATION,
    PromptTemplate,
)
from llm.llm_client import LLMClient
from llm.schemas import EstimationResult, ProjectMatchResult, SummaryResult
from timebeacon.errors import ModelRequestFailed, ModelResponseInvalid
from timebeacon.metrics import MODEL_CALLS_TOTAL
from timebeacon.models import Project, RawActivityItem

logger = logging.getLogger(__name__)

# Source metadata worth showing the model as estimation context
CONTEXT_KEYS = ("duration_minutes", "thread_length", "has_attachments", "mime_type", "location")


class EstimationEngine:
    """Turns activity content into structured time/confidence judgments.

    With an LLMClient every judgment goes through a prompt template; without
    one, duration estimates, project matches and summaries fall back to the
    rules in `estimation.heuristics`.
    """

    def __init__(self, llm: Optional[LLMClient] = None):
        self.llm = llm

    @property
    def uses_model(self) -> bool:
        return self.llm is not None

    def run(self, template: PromptTemplate, fields: Dict[str, Any]) -> BaseModel:
        if self.llm is None:
            raise ModelRequestFailed(f"{template.name} needs a language model, none is configured")

        system, user = template.render(**fields)
        try:
            result = self.llm.complete_json(system=system, user=user, schema=template.schema)
        except ModelResponseInvalid as e:
            MODEL_CALLS_TOTAL.labels(template=template.name, outcome="invalid").inc()
            logger.warning(f"{template.name}: {e}")
            raise
        except ModelRequestFailed:
            MODEL_CALLS_TOTAL.labels(template=template.name, outcome="error").inc()
            raise

        MODEL_CALLS_TOTAL.labels(template=template.name, outcome="ok").inc()
        return result

    # -- duration ---------------------------------------------------------

    def estimate_duration(
        self,
        content: str,
        activity_type: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> EstimationResult:
        if self.llm is None:
            scheduled = (context or {}).get("duration_minutes")
            return heuristics.estimate(activity_type, content, scheduled)

        context_line = f"Context: {json.dumps(context, default=str)}" if context else ""
        return self.run(
            DURATION_ESTIMATION,
            {"content": content, "activity_type": activity_type, "context": context_line},
        )

    def estimate_item(self, item: RawActivityItem) -> EstimationResult:
        context: Dict[str, Any] = {
            "title": item.title,
            "word_count": item.word_count,
            "participants": len(item.participants),
        }
        context.update({k: item.metadata[k] for k in CONTEXT_KEYS if k in item.metadata})
        return self.estimate_duration(item.content or item.title, item.content_type, context)

    # -- project matching -------------------------------------------------

    def match_project(
        self,
        content: str,
        projects: Sequence[Project],
        email_domain: Optional[str] = None,
        attendees: Optional[List[str]] = None,
    ) -> ProjectMatchResult:
        if not projects:
            return ProjectMatchResult(
                matched_project_id=None,
                confidence_score=0.0,
                reasoning="No projects to match against",
                alternatives=[],
            )
        if self.llm is None:
            return heuristics.match_project(content, projects, email_domain)

        project_lines = "\n".join(
            f"- ID: {p.id}, Name: {p.name}, Keywords: {', '.join(p.keywords)}" for p in projects
        )
        result = self.run(
            PROJECT_MATCHING,
            {
                "content": content,
                "projects": project_lines,
                "email_domain": f"Email Domain: {email_domain}" if email_domain else "",
                "attendees": f"Attendees: {', '.join(attendees)}" if attendees else "",
            },
        )

        known = {p.id for p in projects}
        returned = [a.project_id for a in result.alternatives]
        if result.matched_project_id is not None:
            returned.insert(0, result.matched_project_id)
        unknown = [pid for pid in returned if pid not in known]
        if unknown:
            raise ModelResponseInvalid(f"model matched unknown project id(s): {', '.join(unknown)}")
        return result

    def match_item(self, item: RawActivityItem, projects: Sequence[Project]) -> ProjectMatchResult:
        content = f"{item.title}\n{item.content}".strip()
        return self.match_project(content, projects, item.email_domain, item.participants or None)

    # -- summaries and analyses -------------------------------------------

    def summarize(self, content: str, content_type: str, max_length: int = 100) -> SummaryResult:
        if self.llm is None:
            return heuristics.summarize(content, max_length)
        return self.run(SUMMARIZATION, {"content": content, "content_type": content_type, "max_length": max_length})

    def analyze(self, content_type: str, data: Dict[str, Any]) -> BaseModel:
        """Run the content-specific analysis prompt (email, meeting or document)."""
        try:
            template = ANALYSIS_BY_CONTENT_TYPE[content_type]
        except KeyError:
            raise ValueError(f"no analysis template for content type {content_type!r}") from None
        return self.run(template, data)
