from __future__ import annotations

import logging
from typing import Optional

from llm.providers.anthropic_provider import AnthropicProvider
from llm.providers.base import LLMProvider
from llm.providers.mock_provider import MockProvider
from llm.providers.ollama_provider import OllamaProvider
from llm.providers.openai_provider import OpenAIProvider
from timebeacon.config import Settings

logger = logging.getLogger(__name__)


def create_provider(settings: Settings) -> Optional[LLMProvider]:
    """Build the configured provider; None means heuristic-only estimation."""
    name = settings.llm_provider
    if name == "heuristic":
        return None
    if name == "openai":
        return OpenAIProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout_s=settings.llm_timeout_s,
        )
    if name == "anthropic":
        return AnthropicProvider(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            base_url=settings.anthropic_base_url,
            timeout_s=settings.llm_timeout_s,
        )
    if name == "ollama":
        return OllamaProvider(
            model=settings.ollama_model,
            base_url=settings.ollama_base_url,
            timeout_s=settings.llm_timeout_s,
        )
    if name == "mock":
        logger.warning("Using mock LLM provider; estimates are canned")
        return MockProvider()
    raise ValueError(f"Unknown LLM_PROVIDER: {name!r}")
