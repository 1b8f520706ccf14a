"""
Google Drive source: one RawActivityItem per file modified in the range.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List

from integration.base import ActivityRef, ActivitySource
from timebeacon.models import ImportRequest, RawActivityItem

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
FILE_FIELDS = "id, name, mimeType, description, createdTime, modifiedTime, owners, lastModifyingUser, webViewLink"

# Google-native formats we can export as plain text for estimation
TEXT_EXPORTS = {
    "application/vnd.google-apps.document": "text/plain",
    "application/vnd.google-apps.presentation": "text/plain",
    "application/vnd.google-apps.spreadsheet": "text/csv",
}

DOCUMENT_TYPES = {
    "application/vnd.google-apps.document": "document",
    "application/vnd.google-apps.presentation": "presentation",
    "application/vnd.google-apps.spreadsheet": "spreadsheet",
}


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_query(request: ImportRequest) -> str:
    parts = [
        f"modifiedTime >= '{_iso(request.start_date)}'",
        f"modifiedTime <= '{_iso(request.end_date)}'",
        "trashed = false",
        "mimeType != 'application/vnd.google-apps.folder'",
    ]
    if request.folder_id:
        parts.append(f"'{_escape(request.folder_id)}' in parents")
    if request.query:
        parts.append(f"fullText contains '{_escape(request.query)}'")
    return " and ".join(parts)


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(timezone.utc)


def parse_file(file: Dict, text: str = "") -> RawActivityItem:
    modified = _parse_ts(file["modifiedTime"])
    owners = [o["emailAddress"] for o in file.get("owners", []) if o.get("emailAddress")]
    modifier = file.get("lastModifyingUser", {}).get("emailAddress")

    return RawActivityItem(
        source="drive",
        external_id=file["id"],
        content_type="document",
        title=file.get("name", "Untitled"),
        content=text or file.get("description", "") or "",
        occurred_at=modified,
        participants=owners,
        sender=modifier,
        metadata={
            "mime_type": file.get("mimeType"),
            "document_type": DOCUMENT_TYPES.get(file.get("mimeType"), "file"),
            "created_time": file.get("createdTime"),
            "web_view_link": file.get("webViewLink"),
        },
    )


class DriveSource(ActivitySource):
    source = "drive"

    def list_refs(self, request: ImportRequest) -> List[ActivityRef]:
        query = build_query(request)
        refs: List[ActivityRef] = []
        page_token = None

        while len(refs) < request.max_items:
            kwargs = {
                "q": query,
                "pageSize": min(PAGE_SIZE, request.max_items - len(refs)),
                "orderBy": "modifiedTime desc",
                "fields": f"nextPageToken, files({FILE_FIELDS})",
            }
            if page_token:
                kwargs["pageToken"] = page_token
            result = self._call("list files", lambda: self.service.files().list(**kwargs).execute())

            refs.extend(ActivityRef(external_id=f["id"], payload=f) for f in result.get("files", []))
            page_token = result.get("nextPageToken")
            if not page_token:
                break

        logger.info(f"Drive listed {len(refs)} files")
        return refs[: request.max_items]

    def load(self, ref: ActivityRef) -> RawActivityItem:
        file = ref.payload
        export_type = TEXT_EXPORTS.get(file.get("mimeType"))
        text = ""
        if export_type:
            data = self._call(
                f"export {ref.external_id}",
                lambda: self.service.files().export(fileId=ref.external_id, mimeType=export_type).execute(),
            )
            text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else str(data)
        return parse_file(file, text)
