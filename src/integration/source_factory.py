from googleapiclient.discovery import build

from integration.base import ActivitySource
from integration.calendar_source import CalendarSource
from integration.drive_source import DriveSource
from integration.gmail_source import GmailSource
from timebeacon.models import AIPreferences, Source

API_VERSIONS = {
    "gmail": ("gmail", "v1"),
    "calendar": ("calendar", "v3"),
    "drive": ("drive", "v3"),
}


class SourceFactory:
    """Builds the Google API client for a source from a user's credentials."""

    def create(self, source: Source, credentials, preferences: AIPreferences) -> ActivitySource:
        api, version = API_VERSIONS[source]
        service = build(api, version, credentials=credentials, cache_discovery=False)

        if source == "gmail":
            return GmailSource(
                service,
                only_opened=preferences.only_opened_emails,
                skip_promotional=preferences.skip_promotional,
            )
        if source == "calendar":
            return CalendarSource(service)
        return DriveSource(service)
