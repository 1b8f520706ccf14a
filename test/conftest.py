import json
from datetime import datetime, timedelta, timezone

import pytest

from estimation.engine import EstimationEngine
from importer.orchestrator import ImportOrchestrator
from importer.writer import TimeEntryWriter
from integration.base import ActivityRef, ActivitySource
from llm.llm_client import LLMClient
from storage.job_store import InMemoryJobStore
from storage.project_store import InMemoryProjectStore
from storage.time_entry_store import InMemoryTimeEntryStore
from timebeacon.models import RawActivityItem

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

GOOD_ESTIMATE = json.dumps({
    "estimated_minutes": 12,
    "confidence_score": 0.85,
    "reasoning": "Short reply to a client question",
    "min_minutes": 8,
    "max_minutes": 20,
})


class FakeProvider:
    name = "fake"

    def __init__(self, response_text: str):
        self._response_text = response_text
        self.calls = []

    def generate(self, *, system: str, user: str) -> str:
        self.calls.append((system, user))
        return self._response_text


class KeyedProvider:
    """Answers with `overrides[marker]` when marker appears in the user prompt."""

    name = "keyed"

    def __init__(self, default: str, overrides=None):
        self.default = default
        self.overrides = overrides or {}
        self.calls = []

    def generate(self, *, system: str, user: str) -> str:
        self.calls.append((system, user))
        for marker, text in self.overrides.items():
            if marker in user:
                return text
        return self.default


class SequenceProvider:
    """Returns (or raises) the queued outcomes in order."""

    name = "sequence"

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def generate(self, *, system: str, user: str) -> str:
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeSource(ActivitySource):
    def __init__(self, items, source="gmail", load_errors=None, list_error=None):
        super().__init__(service=None)
        self.source = source
        self.items = {i.external_id: i for i in items}
        self.load_errors = load_errors or {}
        self.list_error = list_error
        self.loaded = []

    def list_refs(self, request):
        if self.list_error is not None:
            raise self.list_error
        return [ActivityRef(external_id=i) for i in self.items][: request.max_items]

    def load(self, ref):
        self.loaded.append(ref.external_id)
        if ref.external_id in self.load_errors:
            raise self.load_errors[ref.external_id]
        return self.items[ref.external_id]


class FakeSourceFactory:
    def __init__(self, source: FakeSource):
        self.source = source
        self.created = []

    def create(self, source, credentials, preferences):
        self.created.append((source, credentials, preferences))
        return self.source


def email_item(external_id: str, body: str = "Can you review the attached proposal?", **kw) -> RawActivityItem:
    defaults = dict(
        source="gmail",
        external_id=external_id,
        content_type="email",
        title=f"Subject {external_id}",
        content=body,
        occurred_at=T0,
        sender="alice@acme.com",
        participants=["me@timebeacon.io"],
        metadata={"labels": ["INBOX"], "is_unread": False},
    )
    defaults.update(kw)
    return RawActivityItem(**defaults)


def meeting_item(external_id: str, minutes: int = 45, **kw) -> RawActivityItem:
    defaults = dict(
        source="calendar",
        external_id=external_id,
        content_type="meeting",
        title="Weekly sync",
        content="Agenda: roadmap",
        occurred_at=T0,
        ended_at=T0 + timedelta(minutes=minutes),
        participants=["bob@acme.com", "carol@acme.com", "dan@acme.com", "erin@acme.com"],
        metadata={"duration_minutes": minutes},
    )
    defaults.update(kw)
    return RawActivityItem(**defaults)


@pytest.fixture
def fake_provider_factory():
    def _make(response_text: str):
        return FakeProvider(response_text)
    return _make


@pytest.fixture
def engine_for():
    def _make(provider):
        return EstimationEngine(LLMClient(provider, sleep=lambda s: None))
    return _make


@pytest.fixture
def stores():
    return InMemoryTimeEntryStore(), InMemoryJobStore(), InMemoryProjectStore()


@pytest.fixture
def orchestrator_for(stores):
    entries, jobs, projects = stores

    def _make(engine, **kw):
        kw.setdefault("source_backoff_s", 0)
        return ImportOrchestrator(engine, TimeEntryWriter(entries), jobs, projects, **kw)
    return _make
