"""LLM backend tests."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from llm.base_llm import GenerationError, ProviderUnavailable
from llm.llm_factory import build_backends
from llm.prompt_engine.memory_injection import inject_memory
from llm.providers.compatible_provider import CompatibleProvider
from llm.providers.mock_provider import MockProvider
from llm.providers.openai_provider import OpenAIProvider
from store.types import CharacterState, Location, MemoryEntry


def test_mock_provider_is_deterministic() -> None:
    llm = MockProvider()
    messages = [{"role": "user", "content": "The printer printer is on fire"}]
    first = llm.generate("Kevin", messages)
    assert first == llm.generate("Kevin", messages)
    assert "printer" in first
    assert MockProvider.fallback_line("Neiv", "hi") == MockProvider.fallback_line("Neiv", "hi")


def test_missing_api_key_raises_provider_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    llm = OpenAIProvider()
    with pytest.raises(ProviderUnavailable):
        llm.generate("Kevin", [{"role": "user", "content": "hello"}])
    assert issubclass(ProviderUnavailable, GenerationError)


def test_compatible_provider_uses_known_endpoints() -> None:
    groq = CompatibleProvider(name="groq", model="llama-3.3-70b-versatile", timeout=8)
    assert groq.base_url == "https://api.groq.com/openai/v1"
    assert groq.api_key_env == "GROQ_API_KEY"
    assert groq.name == "groq"
    with pytest.raises(ValueError):
        CompatibleProvider(name="somewhere", model="x")


def test_factory_builds_configured_backends() -> None:
    config = {
        "models": {
            "llm": {
                "timeout_seconds": 30,
                "backends": {
                    "openai": {"type": "openai", "timeout_seconds": 20},
                    "openrouter": {"type": "openai_compatible", "model": "some/model"},
                },
            }
        }
    }
    backends = build_backends(config)
    assert set(backends) == {"openai", "openrouter", "mock"}
    assert backends["openai"].timeout == 20
    assert backends["openrouter"].timeout == 30


def test_inject_memory_prepends_state_and_memories() -> None:
    now = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
    state = CharacterState(character_name="Kevin", energy=0, location=Location.REST_AREA)
    memories = [
        MemoryEntry(id=1, character_name="Kevin", content="Vale trusts me", importance=8, is_pinned=True, created_at=now),
        MemoryEntry(id=2, character_name="Kevin", content="Printer jammed", importance=4, created_at=now),
    ]
    messages = inject_memory([{"role": "user", "content": "hey"}], state, memories)

    assert messages[0]["role"] == "system"
    system = messages[0]["content"]
    assert "completely exhausted" in system
    assert "rest area" in system
    assert "- Vale trusts me" in system
    assert "- Printer jammed (importance 4)" in system
    assert messages[1] == {"role": "user", "content": "hey"}
