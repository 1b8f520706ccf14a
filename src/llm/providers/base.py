from __future__ import annotations
from abc import ABC, abstractmethod

class LLMProvider(ABC):
    name: str = "provider"

    @abstractmethod
    def generate(self, *, system: str, user: str) -> str:
        """
        Must return the model output as TEXT (we'll parse/validate JSON in LLMClient).
        Transport and HTTP status errors are raised as httpx exceptions.
        """
        raise NotImplementedError
