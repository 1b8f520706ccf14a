import json
import logging
import time
from typing import Any, Callable, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from llm.providers.base import LLMProvider
from timebeacon.errors import ModelRequestFailed, ModelResponseInvalid
from timebeacon.retry import retry_call

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

RETRYABLE_STATUS = {408, 429}


def is_transient(exc: Exception) -> bool:
    """Transport errors, rate limiting and 5xx are worth another attempt."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status in RETRYABLE_STATUS or status >= 500
    return isinstance(exc, httpx.TransportError)


def extract_json_object(text: str) -> dict[str, Any]:
    """Pull the single JSON object out of a model reply.

    Prose or a Markdown fence around the object is tolerated, the object
    itself has to be valid JSON.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        raise ModelResponseInvalid("model response contains no JSON object", snippet=text)
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise ModelResponseInvalid(f"model response is not valid JSON: {e.msg}", snippet=text) from e
    if not isinstance(data, dict):
        raise ModelResponseInvalid("model response is not a JSON object", snippet=text)
    return data


class LLMClient:
    """Sends one system/user instruction pair and validates the JSON reply."""

    def __init__(
        self,
        provider: LLMProvider,
        max_attempts: int = 3,
        backoff_s: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.max_attempts = max_attempts
        self.backoff_s = backoff_s
        self._sleep = sleep

    def complete(self, *, system: str, user: str) -> str:
        try:
            return retry_call(
                self.provider.generate,
                system=system,
                user=user,
                attempts=self.max_attempts,
                initial_delay_s=self.backoff_s,
                is_retryable=is_transient,
                sleep=self._sleep,
            )
        except httpx.HTTPStatusError as e:
            raise ModelRequestFailed(
                f"model request failed with HTTP {e.response.status_code}",
                retryable=is_transient(e),
            ) from e
        except httpx.HTTPError as e:
            raise ModelRequestFailed(f"model request failed: {e}", retryable=True) from e

    def complete_json(self, *, system: str, user: str, schema: Type[T]) -> T:
        text = self.complete(system=system, user=user)
        data = extract_json_object(text)
        try:
            return schema.model_validate(data)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            )
            logger.warning(f"Rejected {schema.__name__} response: {problems}")
            raise ModelResponseInvalid(
                f"model response does not match {schema.__name__} ({problems})",
                snippet=text,
            ) from e
