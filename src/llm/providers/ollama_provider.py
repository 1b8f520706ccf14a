from __future__ import annotations
import httpx
from .base import LLMProvider

class OllamaProvider(LLMProvider):
    name = "ollama"

    def __init__(self, model: str = "llama3.1", base_url: str = "http://localhost:11434",
                 timeout_s: float = 60.0):
        self.model = model.strip()
        self.base_url = base_url.strip().rstrip("/")
        self.timeout_s = timeout_s

    def generate(self, *, system: str, user: str) -> str:
        url = f"{self.base_url}/api/chat"
        payload = {
            "model": self.model,
            "stream": False,
            "format": "json",
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "options": {"temperature": 0.1},
        }

        with httpx.Client(timeout=self.timeout_s) as client:
            r = client.post(url, json=payload)
            r.raise_for_status()
            data = r.json()

        return data["message"]["content"]
