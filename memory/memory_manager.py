"""High-level memory manager over the character_memory table."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from memory.retention import DEFAULT_FAST_EXPIRE_TYPES, RetentionPolicy, clamp_importance
from store.schemas import Clock, MemoryRecord, utc_now
from store.sql_store import SQLStore
from store.types import MemoryEntry

logger = logging.getLogger("cse.memory")

SELF_CREATED = "self_created"


class MemoryManager:
    """Writes and reads per-character memories.

    Rows are append-only apart from the pin flag. Expired working memories are
    filtered out on every read and never deleted.
    """

    def __init__(
        self,
        sql_store: SQLStore,
        config: dict[str, Any] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        cfg = config or {}
        self.sql_store = sql_store
        self.clock = clock
        self.retention = RetentionPolicy(cfg.get("fast_expire_types", DEFAULT_FAST_EXPIRE_TYPES))
        self.self_created_daily_cap = int(cfg.get("self_created_daily_cap", 6))

    def visible_filter(self, now: datetime) -> Any:
        return or_(
            MemoryRecord.is_pinned.is_(True),
            MemoryRecord.expires_at.is_(None),
            MemoryRecord.expires_at > now,
        )

    def record(
        self,
        character: str,
        content: str,
        importance: int = 5,
        *,
        memory_type: str = "general",
        pinned: bool = False,
        related_characters: Iterable[str] = (),
        emotional_tags: Iterable[str] = (),
        expires_in: timedelta | None = None,
    ) -> MemoryEntry | None:
        """Insert a memory, returning None when it was refused or could not be written.

        `expires_in` overrides the importance-based retention window.
        """
        content = content.strip()
        if not content:
            return None
        now = self.clock()
        if memory_type == SELF_CREATED and self.self_created_today(character) >= self.self_created_daily_cap:
            logger.info("%s hit the daily self-created memory cap", character)
            return None

        importance = clamp_importance(importance)
        if pinned or expires_in is None:
            expires_at = self.retention.expires_at(importance, now, memory_type, pinned)
        else:
            expires_at = now + expires_in
        try:
            row = self.sql_store.insert(
                MemoryRecord,
                character_name=character,
                content=content,
                memory_type=memory_type,
                importance=importance,
                is_pinned=pinned,
                related_characters=list(related_characters),
                emotional_tags=list(emotional_tags),
                created_at=now,
                expires_at=expires_at,
            )
        except SQLAlchemyError as exc:
            logger.warning("Memory write for %s failed (non-fatal): %s", character, exc)
            return None
        logger.debug("Stored %s memory %s for %s", memory_type, row["id"], character)
        return self._to_entry(row)

    def self_created_today(self, character: str) -> int:
        start_of_day = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        return self.sql_store.count(
            MemoryRecord,
            MemoryRecord.character_name == character,
            MemoryRecord.memory_type == SELF_CREATED,
            MemoryRecord.created_at >= start_of_day,
        )

    def pin(self, memory_id: int, pinned: bool = True) -> bool:
        """Flip the pin flag. Unpinning restores the importance-based expiry from creation time."""
        row = self.sql_store.first(MemoryRecord, MemoryRecord.id == memory_id)
        if row is None:
            return False
        expires_at = self.retention.expires_at(
            row["importance"], row["created_at"], row["memory_type"], pinned
        )
        return bool(
            self.sql_store.patch(
                MemoryRecord, MemoryRecord.id == memory_id, is_pinned=pinned, expires_at=expires_at
            )
        )

    def list_memories(
        self,
        character: str,
        include_expired: bool = False,
        limit: int | None = 50,
    ) -> list[MemoryEntry]:
        """List memories newest first."""
        filters = [MemoryRecord.character_name == character]
        if not include_expired:
            filters.append(self.visible_filter(self.clock()))
        rows = self.sql_store.read(
            MemoryRecord,
            *filters,
            order_by=[MemoryRecord.created_at.desc(), MemoryRecord.id.desc()],
            limit=limit,
        )
        return [self._to_entry(row) for row in rows]

    @staticmethod
    def _to_entry(row: dict[str, Any]) -> MemoryEntry:
        return MemoryEntry(
            id=row["id"],
            character_name=row["character_name"],
            content=row["content"],
            memory_type=row["memory_type"],
            importance=clamp_importance(row["importance"]),
            is_pinned=bool(row["is_pinned"]),
            related_characters=list(row["related_characters"] or []),
            emotional_tags=list(row["emotional_tags"] or []),
            created_at=row["created_at"],
            expires_at=row["expires_at"],
        )
