"""
Google Calendar source: one RawActivityItem per (single) event.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List

from integration.base import ActivityRef, ActivitySource
from timebeacon.models import ImportRequest, RawActivityItem

logger = logging.getLogger(__name__)

PAGE_SIZE = 250


def _rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_when(when: Dict) -> datetime:
    value = when.get("dateTime") or when.get("date")
    if "T" in value:  # datetime
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:  # date only
        parsed = datetime.fromisoformat(value + "T00:00:00")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_event(event: Dict, calendar_id: str = "primary") -> RawActivityItem:
    start = _parse_when(event["start"])
    end = _parse_when(event.get("end") or event["start"])
    attendees = [a["email"] for a in event.get("attendees", []) if a.get("email") and not a.get("self")]
    description = event.get("description", "") or ""

    return RawActivityItem(
        source="calendar",
        external_id=event["id"],
        content_type="meeting",
        title=event.get("summary", "No Title"),
        content=description,
        occurred_at=start,
        ended_at=end,
        participants=attendees,
        sender=event.get("organizer", {}).get("email"),
        metadata={
            "calendar_id": calendar_id,
            "duration_minutes": round((end - start).total_seconds() / 60),
            "location": event.get("location", ""),
            "all_day": "date" in event["start"] and "dateTime" not in event["start"],
            "has_agenda": bool(description.strip()),
            "html_link": event.get("htmlLink"),
        },
    )


class CalendarSource(ActivitySource):
    source = "calendar"

    def list_refs(self, request: ImportRequest) -> List[ActivityRef]:
        refs: List[ActivityRef] = []
        page_token = None

        while len(refs) < request.max_items:
            kwargs = {
                "calendarId": request.calendar_id,
                "timeMin": _rfc3339(request.start_date),
                "timeMax": _rfc3339(request.end_date),
                "singleEvents": True,
                "orderBy": "startTime",
                "maxResults": min(PAGE_SIZE, request.max_items - len(refs)),
            }
            if request.query:
                kwargs["q"] = request.query
            if page_token:
                kwargs["pageToken"] = page_token
            result = self._call("list events", lambda: self.service.events().list(**kwargs).execute())

            for event in result.get("items", []):
                if event.get("status") == "cancelled":
                    continue
                refs.append(ActivityRef(external_id=event["id"], payload={**event, "_calendar_id": request.calendar_id}))
            page_token = result.get("nextPageToken")
            if not page_token:
                break

        logger.info(f"Calendar {request.calendar_id} listed {len(refs)} events")
        return refs[: request.max_items]

    def load(self, ref: ActivityRef) -> RawActivityItem:
        # events.list already returns full events
        event = dict(ref.payload)
        calendar_id = event.pop("_calendar_id", "primary")
        return parse_event(event, calendar_id)
