"""Retention windows for working memories."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

DEFAULT_FAST_EXPIRE_TYPES = (
    "chaos",
    "vent_activity",
    "printer_mentioned",
    "stapler",
    "fire_drill",
    "glitter_incident",
)


def clamp_importance(importance: int) -> int:
    return max(1, min(10, int(importance)))


def retention_for(importance: int) -> timedelta:
    """Map importance (1-10) to how long a non-pinned memory stays visible."""
    importance = clamp_importance(importance)
    if importance >= 9:
        return timedelta(days=30)
    if importance >= 7:
        return timedelta(days=7)
    if importance >= 5:
        return timedelta(hours=24)
    return timedelta(hours=1)


class RetentionPolicy:
    """Computes expiry timestamps; pinned memories never expire."""

    def __init__(self, fast_expire_types: Iterable[str] = DEFAULT_FAST_EXPIRE_TYPES) -> None:
        self.fast_expire_types = frozenset(fast_expire_types)

    def expires_at(
        self,
        importance: int,
        created_at: datetime,
        memory_type: str = "general",
        pinned: bool = False,
    ) -> datetime | None:
        if pinned:
            return None
        if memory_type in self.fast_expire_types:
            return created_at + timedelta(hours=1)
        return created_at + retention_for(importance)
