"""OpenAI provider."""

from __future__ import annotations

import os
from typing import Any

import openai
from openai import OpenAI

from llm.base_llm import BaseLLM, GenerationError, ProviderUnavailable


class OpenAIProvider(BaseLLM):
    """OpenAI chat-completions adapter. Needs an API key in the environment."""

    name = "openai"
    api_key_env = "OPENAI_API_KEY"
    base_url: str | None = None

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        max_tokens: int = 300,
        timeout: float = 20.0,
        api_key_env: str | None = None,
        base_url: str | None = None,
    ) -> None:
        super().__init__(max_tokens=max_tokens, timeout=timeout)
        self.model = model
        if api_key_env:
            self.api_key_env = api_key_env
        if base_url:
            self.base_url = base_url
        self._client: OpenAI | None = None

    def _get_client(self) -> OpenAI:
        if self._client is None:
            api_key = os.getenv(self.api_key_env)
            if not api_key:
                raise ProviderUnavailable(f"{self.name} provider unavailable: {self.api_key_env} not set.")
            # Retries stay off; a failed turn falls back instead of waiting.
            self._client = OpenAI(api_key=api_key, base_url=self.base_url, max_retries=0)
        return self._client

    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=int(kwargs.get("max_tokens", self.max_tokens)),
                timeout=float(kwargs.get("timeout", self.timeout)),
            )
        except openai.APITimeoutError as exc:
            raise GenerationError(f"{self.name} timed out: {exc}") from exc
        except openai.OpenAIError as exc:
            raise GenerationError(f"{self.name} request failed: {exc}") from exc
        if not response.choices:
            raise GenerationError(f"{self.name} returned no choices.")
        return response.choices[0].message.content or ""
