from __future__ import annotations

from typing import Optional

SNIPPET_LIMIT = 200


def truncate_snippet(text: Optional[str], limit: int = SNIPPET_LIMIT) -> str:
    if not text:
        return ""
    text = text.replace("\n", " ")
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class TimeBeaconError(Exception):
    """Base class for import/estimation failures."""


class AuthenticationFailure(TimeBeaconError):
    """Credentials for a source were rejected. Fatal to the whole import."""


class SourceFetchFailure(TimeBeaconError):
    """A source API call failed after retries."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class ModelRequestFailed(TimeBeaconError):
    """The model endpoint could not be reached or refused the request."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class ModelResponseInvalid(TimeBeaconError):
    """The model answered, but not with JSON matching the expected schema."""

    def __init__(self, message: str, snippet: Optional[str] = None):
        self.snippet = truncate_snippet(snippet)
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        if self.snippet:
            return f"{base} (response: {self.snippet!r})"
        return base


class PersistenceFailure(TimeBeaconError):
    """A time-entry or job write failed."""
