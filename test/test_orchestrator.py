import json
from datetime import timedelta

import pytest

from conftest import GOOD_ESTIMATE, T0, FakeSource, KeyedProvider, email_item, meeting_item
from estimation.engine import EstimationEngine
from timebeacon.errors import AuthenticationFailure, SourceFetchFailure
from timebeacon.models import AIPreferences, ImportRequest, Project


def _request(source="gmail", **kw):
    return ImportRequest(user_id="u1", source=source, start_date=T0 - timedelta(days=1), end_date=T0 + timedelta(days=1), **kw)


@pytest.mark.asyncio
async def test_clean_run_counts_are_equal(engine_for, orchestrator_for, stores):
    items = [email_item(f"m{i}") for i in range(4)]
    orch = orchestrator_for(engine_for(KeyedProvider(GOOD_ESTIMATE)))

    job = await orch.run(_request(), FakeSource(items))

    assert job.status == "completed"
    assert job.imported_count == job.processed_count == job.time_entries_created == 4
    assert job.failed_count == 0
    assert job.errors == []
    entries = await stores[0].list_for_user("u1")
    assert {e.external_item_id for e in entries} == {"m0", "m1", "m2", "m3"}
    assert all(e.status == "pending_review" for e in entries)


@pytest.mark.asyncio
async def test_reimport_creates_nothing_new(engine_for, orchestrator_for, stores):
    items = [email_item("m1"), email_item("m2")]
    orch = orchestrator_for(engine_for(KeyedProvider(GOOD_ESTIMATE)))

    first = await orch.run(_request(), FakeSource(items))
    second = await orch.run(_request(), FakeSource(items))

    assert first.time_entries_created == 2
    assert second.processed_count == 2
    assert second.time_entries_created == 0
    assert len(await stores[0].list_for_user("u1")) == 2


@pytest.mark.asyncio
async def test_one_malformed_model_reply_fails_only_that_item(engine_for, orchestrator_for):
    items = [
        email_item("m1", body="Quarterly numbers attached"),
        email_item("m2", body="BROKEN reply please"),
        email_item("m3", body="Lunch on Friday?"),
    ]
    provider = KeyedProvider(GOOD_ESTIMATE, overrides={"BROKEN": '{"estimated_minutes": 5, "reasoning": "oops"'})
    orch = orchestrator_for(engine_for(provider))

    job = await orch.run(_request(), FakeSource(items))

    assert job.imported_count == 3
    assert job.processed_count == 2
    assert job.failed_count == 1
    assert job.time_entries_created == 2
    assert len(job.errors) == 1
    assert job.errors[0].startswith("m2: ")


@pytest.mark.asyncio
async def test_out_of_range_confidence_fails_the_item(engine_for, orchestrator_for):
    bad = json.loads(GOOD_ESTIMATE)
    bad["confidence_score"] = 1.4
    orch = orchestrator_for(engine_for(KeyedProvider(json.dumps(bad))))

    job = await orch.run(_request(), FakeSource([email_item("m1")]))

    assert job.failed_count == 1
    assert job.time_entries_created == 0
    assert "confidence_score" in job.errors[0]


@pytest.mark.asyncio
async def test_estimate_outside_its_own_range_fails_the_item(engine_for, orchestrator_for):
    bad = json.loads(GOOD_ESTIMATE)
    bad.update(estimated_minutes=300, min_minutes=50, max_minutes=10)
    orch = orchestrator_for(engine_for(KeyedProvider(json.dumps(bad))))

    job = await orch.run(_request(), FakeSource([email_item("m1")]))

    assert job.failed_count == 1
    assert job.time_entries_created == 0
    assert job.errors[0].startswith("m1: ")


@pytest.mark.asyncio
async def test_huge_estimate_fails_only_that_item(engine_for, orchestrator_for, stores):
    huge = json.loads(GOOD_ESTIMATE)
    huge.update(estimated_minutes=1e12, max_minutes=1e12)
    items = [
        email_item("m1", body="Quarterly numbers attached"),
        email_item("m2", body="HUGE thread to read"),
        email_item("m3", body="Lunch on Friday?"),
    ]
    provider = KeyedProvider(GOOD_ESTIMATE, overrides={"HUGE": json.dumps(huge)})
    orch = orchestrator_for(engine_for(provider))

    job = await orch.run(_request(), FakeSource(items))

    assert job.status == "completed"
    assert job.imported_count == 3
    assert job.processed_count == 2
    assert job.failed_count == 1
    assert job.time_entries_created == 2
    assert len(job.errors) == 1
    assert job.errors[0].startswith("m2: ")
    assert {e.external_item_id for e in await stores[0].list_for_user("u1")} == {"m1", "m3"}


@pytest.mark.asyncio
async def test_meeting_ending_before_it_starts_fails_the_item(engine_for, orchestrator_for):
    items = [meeting_item("e1"), meeting_item("e2", ended_at=T0 - timedelta(minutes=30))]
    orch = orchestrator_for(engine_for(KeyedProvider(GOOD_ESTIMATE)))

    job = await orch.run(_request("calendar"), FakeSource(items, source="calendar"))

    assert job.status == "completed"
    assert job.processed_count == 1
    assert job.failed_count == 1
    assert job.errors[0].startswith("e2: ")


@pytest.mark.asyncio
async def test_unexpected_errors_are_recorded_as_item_failures(engine_for, orchestrator_for):
    class BrokenEngine(EstimationEngine):
        def estimate_item(self, item):
            if item.external_id == "m3":
                raise ValueError("bad metadata")
            return super().estimate_item(item)

    items = [email_item("m1"), email_item("m2"), email_item("m3"), email_item("m4")]
    source = FakeSource(items, load_errors={"m2": KeyError("payload")})
    orch = orchestrator_for(BrokenEngine(engine_for(KeyedProvider(GOOD_ESTIMATE)).llm))

    job = await orch.run(_request(), source)

    assert job.status == "completed"
    assert job.imported_count == 4
    assert job.processed_count == 2
    assert job.failed_count == 2
    assert job.imported_count == job.processed_count + job.failed_count
    assert sorted(job.errors) == ["m2: KeyError: 'payload'", "m3: ValueError: bad metadata"]


@pytest.mark.asyncio
async def test_load_failure_is_recorded_and_counted(engine_for, orchestrator_for):
    items = [email_item("m1"), email_item("m2")]
    source = FakeSource(items, load_errors={"m2": SourceFetchFailure("gmail: failed to get message m2 (HTTP 404)")})
    orch = orchestrator_for(engine_for(KeyedProvider(GOOD_ESTIMATE)))

    job = await orch.run(_request(), source)

    assert job.imported_count == 2
    assert job.processed_count == 1
    assert job.failed_count == 1
    assert job.errors == ["m2: gmail: failed to get message m2 (HTTP 404)"]


@pytest.mark.asyncio
async def test_retryable_load_failure_is_retried(engine_for, orchestrator_for):
    calls = []

    class FlakySource(FakeSource):
        def load(self, ref):
            calls.append(ref.external_id)
            if len(calls) == 1:
                raise SourceFetchFailure("gmail: HTTP 503", retryable=True)
            return super().load(ref)

    orch = orchestrator_for(engine_for(KeyedProvider(GOOD_ESTIMATE)))
    job = await orch.run(_request(), FlakySource([email_item("m1")]))

    assert calls == ["m1", "m1"]
    assert job.processed_count == 1


@pytest.mark.asyncio
async def test_auth_failure_fails_the_job(engine_for, orchestrator_for, stores):
    items = [email_item("m1")]
    source = FakeSource(items, load_errors={"m1": AuthenticationFailure("gmail: access denied")})
    orch = orchestrator_for(engine_for(KeyedProvider(GOOD_ESTIMATE)))

    with pytest.raises(AuthenticationFailure):
        await orch.run(_request(), source)

    jobs = stores[1]
    (job,) = jobs._jobs.values()
    assert job.status == "failed"
    assert job.completed_at is not None


@pytest.mark.asyncio
async def test_listing_failure_completes_with_error(engine_for, orchestrator_for):
    source = FakeSource([], list_error=SourceFetchFailure("gmail: failed to list messages (HTTP 500)"))
    orch = orchestrator_for(engine_for(KeyedProvider(GOOD_ESTIMATE)))

    job = await orch.run(_request(), source)

    assert job.status == "completed"
    assert job.imported_count == 0
    assert job.errors == ["list: gmail: failed to list messages (HTTP 500)"]


@pytest.mark.asyncio
async def test_errors_are_capped(engine_for, orchestrator_for):
    items = [email_item(f"m{i}") for i in range(5)]
    orch = orchestrator_for(engine_for(KeyedProvider("not json at all")), max_errors=3)

    job = await orch.run(_request(), FakeSource(items))

    assert job.failed_count == 5
    assert len(job.errors) == 3


@pytest.mark.asyncio
async def test_filtered_gmail_items_are_not_counted(engine_for, orchestrator_for):
    items = [
        email_item("read"),
        email_item("unread", metadata={"labels": ["INBOX", "UNREAD"], "is_unread": True}),
        email_item("promo", metadata={"labels": ["CATEGORY_PROMOTIONS"], "is_unread": False}),
    ]
    orch = orchestrator_for(engine_for(KeyedProvider(GOOD_ESTIMATE)))

    job = await orch.run(_request(), FakeSource(items), AIPreferences())

    assert job.imported_count == 1
    assert job.processed_count == 1
    assert job.failed_count == 0


@pytest.mark.asyncio
async def test_meeting_import_without_model_uses_scheduled_duration(orchestrator_for, stores):
    orch = orchestrator_for(EstimationEngine(None))

    job = await orch.run(_request("calendar"), FakeSource([meeting_item("e1", minutes=30)], source="calendar"))

    assert job.time_entries_created == 1
    (entry,) = await stores[0].list_for_user("u1")
    assert entry.estimated_minutes == 30
    assert entry.confidence_score == 0.3
    assert entry.end_time == T0 + timedelta(minutes=30)


@pytest.mark.asyncio
async def test_project_match_is_applied(engine_for, orchestrator_for, stores):
    entries, _, projects = stores
    projects.add(None, Project(id="p1", name="Acme rollout", keywords=["proposal"], client="Acme", client_domain="acme.com"))
    match = json.dumps({
        "matched_project_id": "p1",
        "confidence_score": 0.9,
        "reasoning": "Sender domain matches client",
        "alternatives": [],
    })

    class RoutingProvider(KeyedProvider):
        def generate(self, *, system, user):
            if '"matched_project_id"' in system:
                return match
            return super().generate(system=system, user=user)

    orch = orchestrator_for(engine_for(RoutingProvider(GOOD_ESTIMATE)))
    job = await orch.run(_request(), FakeSource([email_item("m1")]))

    assert job.time_entries_created == 1
    (entry,) = await entries.list_for_user("u1")
    assert entry.project_id == "p1"
    assert entry.client == "Acme"
    assert entry.billable is True


@pytest.mark.asyncio
async def test_unknown_project_id_fails_the_item(engine_for, orchestrator_for, stores):
    stores[2].add(None, Project(id="p1", name="Acme rollout"))

    class RoutingProvider(KeyedProvider):
        def generate(self, *, system, user):
            if '"matched_project_id"' in system:
                return json.dumps({
                    "matched_project_id": "p999",
                    "confidence_score": 0.7,
                    "reasoning": "guess",
                    "alternatives": [],
                })
            return super().generate(system=system, user=user)

    orch = orchestrator_for(engine_for(RoutingProvider(GOOD_ESTIMATE)))
    job = await orch.run(_request(), FakeSource([email_item("m1")]))

    assert job.failed_count == 1
    assert "p999" in job.errors[0]
