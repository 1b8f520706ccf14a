from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, TypeVar

from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from timebeacon.errors import AuthenticationFailure, SourceFetchFailure
from timebeacon.models import ImportRequest, RawActivityItem, Source

logger = logging.getLogger(__name__)

T = TypeVar("T")

AUTH_STATUS = {401, 403}
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass(frozen=True)
class ActivityRef:
    """Pointer to one source item, produced by listing and consumed by load()."""

    external_id: str
    payload: Dict[str, Any] = field(default_factory=dict)


def http_status(error: HttpError) -> int:
    return int(getattr(error.resp, "status", 0) or 0)


def is_retryable_source_error(exc: Exception) -> bool:
    return isinstance(exc, SourceFetchFailure) and exc.retryable


class ActivitySource(ABC):
    """Wraps one Google API and hands back RawActivityItems.

    Listing and loading are separate so the orchestrator can retry and
    account for each item on its own.
    """

    source: Source

    def __init__(self, service):
        self.service = service

    @abstractmethod
    def list_refs(self, request: ImportRequest) -> List[ActivityRef]:
        raise NotImplementedError

    @abstractmethod
    def load(self, ref: ActivityRef) -> RawActivityItem:
        raise NotImplementedError

    def _call(self, what: str, func: Callable[[], T]) -> T:
        """Run one API call and map Google errors onto the import error taxonomy."""
        try:
            return func()
        except RefreshError as e:
            raise AuthenticationFailure(f"{self.source}: credentials could not be refreshed ({e})") from e
        except HttpError as e:
            status = http_status(e)
            if status in AUTH_STATUS and _is_auth_error(e):
                raise AuthenticationFailure(f"{self.source}: access denied while trying to {what} (HTTP {status})") from e
            raise SourceFetchFailure(
                f"{self.source}: failed to {what} (HTTP {status})",
                retryable=status in RETRYABLE_STATUS or _is_rate_limited(e),
            ) from e
        except (OSError, TimeoutError) as e:
            raise SourceFetchFailure(f"{self.source}: failed to {what} ({e})", retryable=True) from e


def _reason(error: HttpError) -> str:
    details = getattr(error, "error_details", None) or []
    if details and isinstance(details, list) and isinstance(details[0], dict):
        return str(details[0].get("reason", ""))
    return ""


def _is_rate_limited(error: HttpError) -> bool:
    return _reason(error) in {"rateLimitExceeded", "userRateLimitExceeded"}


def _is_auth_error(error: HttpError) -> bool:
    # Google reports per-user quota exhaustion as 403 too
    return not _is_rate_limited(error)
