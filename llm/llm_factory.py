"""LLM provider factory."""

from __future__ import annotations

import logging
from typing import Any

from llm.base_llm import BaseLLM
from llm.providers.compatible_provider import CompatibleProvider
from llm.providers.mock_provider import MockProvider
from llm.providers.openai_provider import OpenAIProvider

logger = logging.getLogger("cse.llm")


def build_provider(name: str, cfg: dict[str, Any], defaults: dict[str, Any] | None = None) -> BaseLLM:
    """Build one backend from its models.yaml entry."""
    defaults = defaults or {}
    provider_type = cfg.get("type", name)
    max_tokens = int(cfg.get("max_tokens", defaults.get("max_tokens", 300)))
    timeout = float(cfg.get("timeout_seconds", defaults.get("timeout_seconds", 25)))

    if provider_type == "openai":
        return OpenAIProvider(
            model=cfg.get("model", "gpt-4o-mini"),
            max_tokens=max_tokens,
            timeout=timeout,
            api_key_env=cfg.get("api_key_env"),
            base_url=cfg.get("base_url"),
        )
    if provider_type in {"openai_compatible", "openrouter", "groq"}:
        return CompatibleProvider(
            name=name,
            model=cfg.get("model", "meta-llama/llama-3.1-8b-instruct"),
            base_url=cfg.get("base_url"),
            api_key_env=cfg.get("api_key_env"),
            max_tokens=max_tokens,
            timeout=timeout,
        )
    if provider_type != "mock":
        logger.warning("Unknown provider type '%s' for backend %s; using mock", provider_type, name)
    return MockProvider(max_tokens=max_tokens, timeout=timeout)


def build_backends(config: dict[str, Any]) -> dict[str, BaseLLM]:
    """Build every configured backend keyed by name; a mock backend always exists."""
    llm_cfg = config.get("models", {}).get("llm", {})
    defaults = {key: llm_cfg[key] for key in ("max_tokens", "timeout_seconds") if key in llm_cfg}
    backends: dict[str, BaseLLM] = {}
    for name, cfg in (llm_cfg.get("backends") or {}).items():
        backends[name] = build_provider(name, cfg or {}, defaults)
    backends.setdefault("mock", MockProvider())
    return backends
