"""Scoring and keyword helpers for memory retrieval."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime, timedelta

STOP_WORDS = frozenset(
    """
    about after again also been before being could does doing down each from
    have having here into just like more most much only other over same should
    some such than that their them then there these they this those through
    under very want were what when where which while will with would your yours
    really think know going okay yeah
    """.split()
)

_WORD = re.compile(r"[a-z][a-z']{3,}")


def extract_keywords(
    text: str | None,
    patterns: Iterable[str] = (),
    limit: int = 3,
) -> list[str]:
    """Pick up to `limit` keywords: configured patterns first, then plain content words."""
    if not text:
        return []
    found: list[str] = []
    for pattern in patterns:
        match = re.search(pattern, text, flags=re.IGNORECASE)
        if match:
            found.append(match.group(0).lower())
    for word in _WORD.findall(text.lower()):
        word = word.strip("'")
        if len(word) >= 4 and word not in STOP_WORDS:
            found.append(word)
    # dict keeps first-seen order
    return list(dict.fromkeys(found))[:limit]


def is_fresh(created_at: datetime, now: datetime, window: timedelta = timedelta(hours=1)) -> bool:
    return now - created_at < window


def working_score(importance: int, created_at: datetime, now: datetime, fresh_bonus: int = 3) -> int:
    """Importance plus a bonus for memories made within the last hour."""
    return int(importance) + (fresh_bonus if is_fresh(created_at, now) else 0)
