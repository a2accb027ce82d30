"""Base LLM interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class GenerationError(RuntimeError):
    """The backend failed, timed out, or returned nothing usable."""


class ProviderUnavailable(GenerationError):
    """The backend cannot be used at all, e.g. missing credentials."""


class BaseLLM(ABC):
    """Abstract LLM provider interface."""

    name = "base"

    def __init__(self, max_tokens: int = 300, timeout: float = 25.0) -> None:
        self.max_tokens = int(max_tokens)
        self.timeout = float(timeout)

    @abstractmethod
    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        """Return assistant response text for a message list."""

    def generate(
        self,
        identity: str,
        messages: list[dict[str, str]],
        *,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> str:
        """Produce one utterance for identity, raising GenerationError on any failure."""
        text = self.chat(
            messages,
            identity=identity,
            max_tokens=max_tokens or self.max_tokens,
            timeout=timeout or self.timeout,
        )
        text = (text or "").strip()
        if not text:
            raise GenerationError(f"{self.name} returned an empty response for {identity}.")
        return text
