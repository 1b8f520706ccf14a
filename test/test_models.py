from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from conftest import T0
from timebeacon.models import (
    AIPreferences,
    AIPreferencesUpdate,
    ImportJobStatus,
    ImportRequest,
    RawActivityItem,
    TimeEntry,
)


def test_import_request_defaults():
    r = ImportRequest(user_id="u1", source="gmail", start_date=datetime(2024, 3, 1))
    assert r.start_date.tzinfo == timezone.utc
    assert r.end_date >= r.start_date
    assert r.max_items == 100
    assert r.calendar_id == "primary"


def test_import_request_rejects_reversed_range():
    with pytest.raises(ValidationError):
        ImportRequest(user_id="u1", source="gmail", start_date=T0, end_date=T0 - timedelta(hours=1))


@pytest.mark.parametrize("max_items", [0, 501])
def test_import_request_bounds_max_items(max_items):
    with pytest.raises(ValidationError):
        ImportRequest(user_id="u1", source="gmail", start_date=T0, end_date=T0, max_items=max_items)


def test_unknown_source_rejected():
    with pytest.raises(ValidationError):
        ImportRequest(user_id="u1", source="outlook", start_date=T0, end_date=T0)


def test_email_domain():
    item = RawActivityItem(
        source="gmail", external_id="m1", content_type="email", occurred_at=T0, sender="Bob <bob@Acme.COM>"
    )
    assert item.email_domain == "acme.com"


def _entry(**kw):
    fields = dict(
        user_id="u1",
        date=T0.date(),
        start_time=T0,
        end_time=T0 + timedelta(minutes=30),
        duration_hours=0.5,
        source="gmail",
        external_item_id="m1",
        confidence_score=0.7,
        estimated_minutes=30,
    )
    fields.update(kw)
    return TimeEntry(**fields)


def test_time_entry_defaults():
    e = _entry()
    assert e.status == "pending_review"
    assert e.automated is True
    assert e.billable is True


def test_time_entry_confidence_bounds():
    with pytest.raises(ValidationError):
        _entry(confidence_score=1.5)


def test_time_entry_estimate_fields_travel_together():
    with pytest.raises(ValidationError):
        _entry(confidence_score=None)


def test_time_entry_end_before_start():
    with pytest.raises(ValidationError):
        _entry(end_time=T0 - timedelta(minutes=1))


def test_job_status_starts_running():
    job = ImportJobStatus(user_id="u1", source="drive")
    assert job.status == "running"
    assert not job.finished


def test_preferences_update_rejects_out_of_range_threshold():
    with pytest.raises(ValidationError):
        AIPreferencesUpdate(confidence_threshold=150)


def test_preferences_update_applies_only_given_fields():
    updated = AIPreferencesUpdate(description_length="brief").apply(AIPreferences(confidence_threshold=70))
    assert updated.description_length == "brief"
    assert updated.confidence_threshold == 70
