"""Context memory retrieval for a character's next turn."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from memory.memory_manager import MemoryManager
from memory.scoring import extract_keywords, working_score
from store.schemas import MemoryRecord
from store.types import MemoryEntry


class MemoryRetriever:
    """Builds the memory context: every pinned memory plus a capped working set."""

    def __init__(self, memory_manager: MemoryManager, config: dict[str, Any] | None = None) -> None:
        cfg = config or {}
        self.memory_manager = memory_manager
        self.working_cap = int(cfg.get("working_cap", 8))
        self.important_limit = int(cfg.get("important_limit", 5))
        self.important_threshold = int(cfg.get("important_threshold", 5))
        self.recent_limit = int(cfg.get("recent_limit", 4))
        self.recent_window = timedelta(hours=float(cfg.get("recent_window_hours", 24)))
        self.keyword_limit = int(cfg.get("keyword_limit", 3))
        self.matches_per_keyword = int(cfg.get("matches_per_keyword", 2))
        self.keyword_patterns = list(cfg.get("keyword_patterns", []))

    def retrieve(self, character: str, context_hint: str | None = None) -> list[MemoryEntry]:
        """Return pinned memories (newest first) followed by up to `working_cap` others."""
        manager = self.memory_manager
        store = manager.sql_store
        now = manager.clock()
        own = MemoryRecord.character_name == character
        working = [own, MemoryRecord.is_pinned.is_(False), manager.visible_filter(now)]

        pinned = store.read(
            MemoryRecord,
            own,
            MemoryRecord.is_pinned.is_(True),
            order_by=[MemoryRecord.created_at.desc(), MemoryRecord.id.desc()],
        )

        chosen: dict[int, dict[str, Any]] = {}
        for row in store.read(
            MemoryRecord,
            *working,
            MemoryRecord.importance >= self.important_threshold,
            order_by=[MemoryRecord.importance.desc(), MemoryRecord.created_at.desc()],
            limit=self.important_limit,
        ):
            chosen[row["id"]] = row

        for row in store.read(
            MemoryRecord,
            *working,
            MemoryRecord.created_at >= now - self.recent_window,
            order_by=[MemoryRecord.created_at.desc(), MemoryRecord.id.desc()],
            limit=self.recent_limit,
        ):
            chosen.setdefault(row["id"], row)

        if context_hint:
            keywords = extract_keywords(context_hint, self.keyword_patterns, self.keyword_limit)
            for keyword in keywords:
                if len(chosen) >= self.working_cap:
                    break
                for row in store.read(
                    MemoryRecord,
                    *working,
                    MemoryRecord.content.ilike(f"%{keyword}%"),
                    order_by=[MemoryRecord.importance.desc(), MemoryRecord.created_at.desc()],
                    limit=self.matches_per_keyword,
                ):
                    if len(chosen) >= self.working_cap:
                        break
                    chosen.setdefault(row["id"], row)

        ranked = sorted(
            chosen.values(),
            key=lambda row: working_score(row["importance"], row["created_at"], now),
            reverse=True,
        )[: self.working_cap]

        to_entry = MemoryManager._to_entry
        return [to_entry(row) for row in pinned] + [to_entry(row) for row in ranked]
