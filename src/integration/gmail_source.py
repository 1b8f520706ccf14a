"""
Gmail source: one RawActivityItem per message.
"""

import base64
import logging
from datetime import datetime, timezone
from email.utils import getaddresses, parsedate_to_datetime
from typing import Dict, List, Optional

from integration.base import ActivityRef, ActivitySource
from timebeacon.models import ImportRequest, RawActivityItem

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


def build_query(request: ImportRequest, only_opened: bool = False, skip_promotional: bool = False) -> str:
    parts = [f"after:{int(request.start_date.timestamp())}", f"before:{int(request.end_date.timestamp())}"]
    if only_opened:
        parts.append("is:read")
    if skip_promotional:
        parts.append("-category:promotions")
    if request.query:
        parts.append(f"({request.query})")
    return " ".join(parts)


def _header(headers: List[Dict], name: str, default: str = "") -> str:
    return next((h["value"] for h in headers if h.get("name", "").lower() == name.lower()), default)


def _decode(data: str) -> str:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4)).decode("utf-8", errors="replace")


def extract_text(payload: Dict) -> str:
    """Concatenate the text/plain parts of a message payload."""
    if payload.get("mimeType") == "text/plain" and payload.get("body", {}).get("data"):
        return _decode(payload["body"]["data"])
    return "\n".join(filter(None, (extract_text(part) for part in payload.get("parts", []))))


def _has_attachments(payload: Dict) -> bool:
    for part in payload.get("parts", []):
        if part.get("filename") or _has_attachments(part):
            return True
    return False


def _parse_date(value: str, fallback_ms: Optional[str]) -> datetime:
    if value:
        try:
            parsed = parsedate_to_datetime(value)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
        except (TypeError, ValueError):
            pass
    if fallback_ms:
        return datetime.fromtimestamp(int(fallback_ms) / 1000, tz=timezone.utc)
    return datetime.now(timezone.utc)


def parse_message(message: Dict) -> RawActivityItem:
    payload = message.get("payload", {})
    headers = payload.get("headers", [])

    subject = _header(headers, "Subject", "No Subject")
    sender = _header(headers, "From")
    recipients = [addr for _, addr in getaddresses([_header(headers, "To"), _header(headers, "Cc")]) if addr]
    body = extract_text(payload) or message.get("snippet", "")
    labels = message.get("labelIds", [])
    sender_addr = getaddresses([sender])[0][1] if sender else None

    return RawActivityItem(
        source="gmail",
        external_id=message["id"],
        content_type="email",
        title=subject,
        content=body,
        occurred_at=_parse_date(_header(headers, "Date"), message.get("internalDate")),
        participants=recipients,
        sender=sender_addr or sender or None,
        metadata={
            "thread_id": message.get("threadId"),
            "labels": labels,
            "is_unread": "UNREAD" in labels,
            "has_attachments": _has_attachments(payload),
            "recipient_count": len(recipients),
        },
    )


class GmailSource(ActivitySource):
    source = "gmail"

    def __init__(self, service, only_opened: bool = False, skip_promotional: bool = False):
        super().__init__(service)
        self.only_opened = only_opened
        self.skip_promotional = skip_promotional

    def list_refs(self, request: ImportRequest) -> List[ActivityRef]:
        query = build_query(request, self.only_opened, self.skip_promotional)
        refs: List[ActivityRef] = []
        page_token = None

        while len(refs) < request.max_items:
            kwargs = {"userId": "me", "q": query, "maxResults": min(PAGE_SIZE, request.max_items - len(refs))}
            if page_token:
                kwargs["pageToken"] = page_token
            result = self._call("list messages", lambda: self.service.users().messages().list(**kwargs).execute())

            refs.extend(ActivityRef(external_id=m["id"]) for m in result.get("messages", []))
            page_token = result.get("nextPageToken")
            if not page_token:
                break

        logger.info(f"Gmail listed {len(refs)} messages for query {query!r}")
        return refs[: request.max_items]

    def load(self, ref: ActivityRef) -> RawActivityItem:
        message = self._call(
            f"get message {ref.external_id}",
            lambda: self.service.users().messages().get(userId="me", id=ref.external_id, format="full").execute(),
        )
        return parse_message(message)
