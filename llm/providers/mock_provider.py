"""Deterministic local provider, also used as the turn fallback."""

from __future__ import annotations

import hashlib
import re
from collections import Counter
from typing import Any

from llm.base_llm import BaseLLM

FALLBACK_LINES = (
    "{identity} glances up, then back down. \"Give me a second.\"",
    "{identity} nods slowly. \"Yeah. I heard you.\"",
    "{identity} opens their mouth, thinks better of it, and shrugs.",
    "{identity} taps the desk twice. \"Let me get back to you on that.\"",
)


class MockProvider(BaseLLM):
    """Rule-based responder; the same input always produces the same line."""

    name = "mock"

    @staticmethod
    def _tokenize(text: str) -> list[str]:
        return [token for token in re.split(r"[^a-zA-Z0-9]+", text.lower()) if len(token) > 3]

    @staticmethod
    def fallback_line(identity: str, seed_text: str = "") -> str:
        digest = hashlib.sha256(f"{identity}|{seed_text}".encode("utf-8")).digest()
        return FALLBACK_LINES[digest[0] % len(FALLBACK_LINES)].format(identity=identity)

    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        """Generate deterministic text from conversational messages."""
        identity = str(kwargs.get("identity") or "Someone")
        if not messages:
            return self.fallback_line(identity)
        user_messages = [m["content"] for m in messages if m.get("role") == "user"]
        prompt = user_messages[-1] if user_messages else messages[-1]["content"]
        top = Counter(self._tokenize(prompt)).most_common(1)
        if not top:
            return self.fallback_line(identity, prompt)
        return f"{identity} considers the mention of {top[0][0]}. \"Noted.\""
