"""OpenAI-compatible providers (OpenRouter, Groq)."""

from __future__ import annotations

from llm.providers.openai_provider import OpenAIProvider

KNOWN_ENDPOINTS = {
    "openrouter": ("https://openrouter.ai/api/v1", "OPENROUTER_API_KEY"),
    "groq": ("https://api.groq.com/openai/v1", "GROQ_API_KEY"),
}


class CompatibleProvider(OpenAIProvider):
    """Any endpoint speaking the OpenAI chat-completions protocol."""

    def __init__(
        self,
        name: str,
        model: str,
        base_url: str | None = None,
        api_key_env: str | None = None,
        max_tokens: int = 300,
        timeout: float = 25.0,
    ) -> None:
        default_url, default_env = KNOWN_ENDPOINTS.get(name, (None, None))
        base_url = base_url or default_url
        if not base_url:
            raise ValueError(f"Backend '{name}' needs a base_url.")
        super().__init__(
            model=model,
            max_tokens=max_tokens,
            timeout=timeout,
            api_key_env=api_key_env or default_env or f"{name.upper()}_API_KEY",
            base_url=base_url,
        )
        self.name = name
