import base64
from datetime import datetime, timezone
from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from integration.base import ActivityRef
from integration.calendar_source import CalendarSource, parse_event
from integration.drive_source import DriveSource, build_query as drive_query
from integration.gmail_source import GmailSource, build_query as gmail_query, parse_message
from timebeacon.errors import AuthenticationFailure, SourceFetchFailure
from timebeacon.models import ImportRequest


def _request(source, **kw):
    return ImportRequest(
        user_id="u1",
        source=source,
        start_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
        end_date=datetime(2024, 3, 8, tzinfo=timezone.utc),
        **kw,
    )


def _http_error(status, reason=""):
    content = b'{"error": {"message": "denied", "errors": [{"reason": "%s"}]}}' % reason.encode()
    return HttpError(httplib2.Response({"status": status}), content)


def _b64(text):
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


MESSAGE = {
    "id": "m1",
    "threadId": "t1",
    "labelIds": ["INBOX", "UNREAD"],
    "internalDate": "1709542800000",
    "payload": {
        "mimeType": "multipart/mixed",
        "headers": [
            {"name": "Subject", "value": "Contract review"},
            {"name": "From", "value": "Alice <alice@acme.com>"},
            {"name": "To", "value": "me@timebeacon.io, bob@acme.com"},
            {"name": "Date", "value": "Mon, 04 Mar 2024 09:00:00 +0000"},
        ],
        "parts": [
            {"mimeType": "text/plain", "body": {"data": _b64("Please review the attached contract.")}},
            {"mimeType": "application/pdf", "filename": "contract.pdf", "body": {"attachmentId": "a1"}},
        ],
    },
}


def test_gmail_query_applies_preferences():
    q = gmail_query(_request("gmail", query="from:acme.com"), only_opened=True, skip_promotional=True)
    assert q.startswith("after:1709251200 before:1709856000")
    assert "is:read" in q
    assert "-category:promotions" in q
    assert q.endswith("(from:acme.com)")


def test_parse_message():
    item = parse_message(MESSAGE)
    assert item.title == "Contract review"
    assert item.content == "Please review the attached contract."
    assert item.sender == "alice@acme.com"
    assert item.email_domain == "acme.com"
    assert item.participants == ["me@timebeacon.io", "bob@acme.com"]
    assert item.occurred_at == datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)
    assert item.metadata["is_unread"] is True
    assert item.metadata["has_attachments"] is True


def test_gmail_list_paginates_until_max_items():
    service = MagicMock()
    messages = service.users.return_value.messages.return_value
    messages.list.return_value.execute.side_effect = [
        {"messages": [{"id": "a"}, {"id": "b"}], "nextPageToken": "p2"},
        {"messages": [{"id": "c"}]},
    ]

    refs = GmailSource(service).list_refs(_request("gmail", max_items=5))

    assert [r.external_id for r in refs] == ["a", "b", "c"]
    assert messages.list.call_args_list[1].kwargs["pageToken"] == "p2"


def test_gmail_auth_error_maps_to_authentication_failure():
    service = MagicMock()
    service.users.return_value.messages.return_value.get.return_value.execute.side_effect = _http_error(401)

    with pytest.raises(AuthenticationFailure):
        GmailSource(service).load(ActivityRef("m1"))


def test_rate_limit_is_a_retryable_fetch_failure():
    service = MagicMock()
    service.users.return_value.messages.return_value.get.return_value.execute.side_effect = _http_error(
        403, "userRateLimitExceeded"
    )

    with pytest.raises(SourceFetchFailure) as exc:
        GmailSource(service).load(ActivityRef("m1"))
    assert exc.value.retryable is True


def test_not_found_is_not_retryable():
    service = MagicMock()
    service.users.return_value.messages.return_value.get.return_value.execute.side_effect = _http_error(404)

    with pytest.raises(SourceFetchFailure) as exc:
        GmailSource(service).load(ActivityRef("m1"))
    assert exc.value.retryable is False


def test_parse_event():
    item = parse_event(
        {
            "id": "e1",
            "summary": "Planning",
            "description": "Agenda: Q2",
            "start": {"dateTime": "2024-03-04T10:00:00+01:00"},
            "end": {"dateTime": "2024-03-04T11:30:00+01:00"},
            "attendees": [{"email": "me@x.io", "self": True}, {"email": "bob@acme.com"}],
            "organizer": {"email": "bob@acme.com"},
        }
    )
    assert item.content_type == "meeting"
    assert item.occurred_at == datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)
    assert item.metadata["duration_minutes"] == 90
    assert item.metadata["has_agenda"] is True
    assert item.participants == ["bob@acme.com"]


def test_calendar_skips_cancelled_events():
    service = MagicMock()
    service.events.return_value.list.return_value.execute.return_value = {
        "items": [
            {"id": "e1", "status": "confirmed", "start": {"date": "2024-03-04"}, "end": {"date": "2024-03-05"}},
            {"id": "e2", "status": "cancelled", "start": {"date": "2024-03-04"}},
        ]
    }

    source = CalendarSource(service)
    refs = source.list_refs(_request("calendar", calendar_id="team"))

    assert [r.external_id for r in refs] == ["e1"]
    item = source.load(refs[0])
    assert item.metadata["calendar_id"] == "team"
    assert item.metadata["all_day"] is True


def test_drive_query_escapes_quotes():
    q = drive_query(_request("drive", query="Bob's plan", folder_id="f1"))
    assert "modifiedTime >= '2024-03-01T00:00:00'" in q
    assert "'f1' in parents" in q
    assert "fullText contains 'Bob\\'s plan'" in q


def test_drive_exports_google_docs_as_text():
    service = MagicMock()
    service.files.return_value.export.return_value.execute.return_value = b"Design notes for Q2"
    file = {
        "id": "d1",
        "name": "Design",
        "mimeType": "application/vnd.google-apps.document",
        "modifiedTime": "2024-03-04T09:00:00.000Z",
        "owners": [{"emailAddress": "me@x.io"}],
    }

    item = DriveSource(service).load(ActivityRef("d1", payload=file))

    assert item.content == "Design notes for Q2"
    assert item.metadata["document_type"] == "document"
    service.files.return_value.export.assert_called_once_with(fileId="d1", mimeType="text/plain")
