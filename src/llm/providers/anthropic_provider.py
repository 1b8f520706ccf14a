from __future__ import annotations
import httpx
from .base import LLMProvider

ANTHROPIC_VERSION = "2023-06-01"

class AnthropicProvider(LLMProvider):
    name = "anthropic"

    def __init__(self, api_key: str, model: str = "claude-3-5-sonnet-20241022",
                 base_url: str = "https://api.anthropic.com/v1", timeout_s: float = 30.0):
        self.api_key = api_key.strip()
        self.model = model.strip()
        self.base_url = base_url.strip().rstrip("/")
        self.timeout_s = timeout_s

        if not self.api_key:
            raise RuntimeError("ANTHROPIC_API_KEY is missing")

    def generate(self, *, system: str, user: str) -> str:
        url = f"{self.base_url}/messages"
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        payload = {
            "model": self.model,
            "max_tokens": 800,
            "temperature": 0.1,
            "system": system,
            "messages": [{"role": "user", "content": user}],
        }

        with httpx.Client(timeout=self.timeout_s) as client:
            r = client.post(url, headers=headers, json=payload)
            r.raise_for_status()
            data = r.json()

        # only text blocks carry the answer
        return "".join(b.get("text", "") for b in data.get("content", []) if b.get("type") == "text")
