"""Structured JSONL audit logger for turn decisions."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any


class AuditLogger:
    """Writes one JSON line per turn outcome and mirrors it to `cse.audit`."""

    def __init__(self, log_path: Path) -> None:
        self.log_path = log_path
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger("cse.audit")

    @staticmethod
    def _hash_conversation(conversation: list[dict[str, Any]]) -> str:
        payload = json.dumps(conversation, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha256(payload).hexdigest()

    def log(
        self,
        character: str,
        outcome: str,
        allowed: bool,
        reason: str = "",
        conversation: list[dict[str, Any]] | None = None,
        **extra: Any,
    ) -> None:
        """Append one JSONL audit event.

        Conversation text is hashed, never written out.
        """
        event = {
            "timestamp": datetime.now(UTC).isoformat(),
            "character": character,
            "outcome": outcome,
            "allowed": allowed,
            "reason": reason,
            "conversation_hash": self._hash_conversation(conversation or []),
            **extra,
        }
        line = json.dumps(event, ensure_ascii=True, default=str)
        try:
            with self.log_path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError as exc:
            self.logger.warning("Audit file write failed: %s", exc)
        self.logger.info(line)
