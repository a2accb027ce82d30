"""Memory store and retrieval tests."""

from __future__ import annotations

from datetime import timedelta

from conftest import ManualClock

from memory.memory_manager import SELF_CREATED, MemoryManager
from memory.retrieval import MemoryRetriever
from memory.scoring import extract_keywords
from store.sql_store import SQLStore


def build_memory(store: SQLStore, clock: ManualClock) -> MemoryManager:
    return MemoryManager(sql_store=store, clock=clock)


def visible_contents(memory: MemoryManager, character: str) -> list[str]:
    return [entry.content for entry in MemoryRetriever(memory).retrieve(character)]


def test_low_importance_memory_expires_within_hours(store: SQLStore, clock: ManualClock) -> None:
    memory = build_memory(store, clock)
    memory.record("Kevin", "Someone microwaved fish", importance=3)

    clock.advance(minutes=30)
    assert visible_contents(memory, "Kevin") == ["Someone microwaved fish"]

    clock.advance(minutes=90)
    assert visible_contents(memory, "Kevin") == []
    assert memory.list_memories("Kevin") == []
    assert len(memory.list_memories("Kevin", include_expired=True)) == 1


def test_high_importance_memory_lasts_thirty_days(store: SQLStore, clock: ManualClock) -> None:
    memory = build_memory(store, clock)
    memory.record("Kevin", "The night the vents sang", importance=9)

    clock.advance(days=20)
    assert visible_contents(memory, "Kevin") == ["The night the vents sang"]

    clock.advance(days=11)
    assert visible_contents(memory, "Kevin") == []


def test_pinned_memories_never_expire(store: SQLStore, clock: ManualClock) -> None:
    memory = build_memory(store, clock)
    entry = memory.record("Neiv", "Vale trusts me", importance=2, pinned=True)
    assert entry is not None
    assert entry.expires_at is None

    clock.advance(days=400)
    assert visible_contents(memory, "Neiv") == ["Vale trusts me"]


def test_importance_is_clamped(store: SQLStore, clock: ManualClock) -> None:
    memory = build_memory(store, clock)
    high = memory.record("Kevin", "Everything exploded", importance=42)
    low = memory.record("Kevin", "A stapler", importance=-3)
    assert high is not None and high.importance == 10
    assert low is not None and low.importance == 1


def test_fast_expire_types_last_one_hour(store: SQLStore, clock: ManualClock) -> None:
    memory = build_memory(store, clock)
    entry = memory.record("Kevin", "Glitter everywhere", importance=9, memory_type="glitter_incident")
    assert entry is not None
    assert entry.expires_at == clock() + timedelta(hours=1)


def test_retrieve_builds_working_set_from_importance_recency_and_keywords(
    store: SQLStore, clock: ManualClock
) -> None:
    memory = build_memory(store, clock)
    for idx in range(3):
        memory.record("Kevin", f"core fact {idx}", importance=5, pinned=True)
        clock.advance(minutes=1)
    for idx in range(12):
        content = "working memory 0 about the printer" if idx == 0 else f"working memory {idx}"
        memory.record("Kevin", content, importance=5 + idx % 4)
        clock.advance(minutes=1)
    clock.advance(hours=2)

    entries = MemoryRetriever(memory).retrieve("Kevin", context_hint="did the printer survive")

    pinned = [entry.content for entry in entries[:3]]
    working = [entry.content for entry in entries[3:]]
    assert pinned == ["core fact 2", "core fact 1", "core fact 0"]
    assert working == [
        "working memory 11",
        "working memory 7",
        "working memory 3",
        "working memory 10",
        "working memory 6",
        "working memory 9",
        "working memory 8",
        "working memory 0 about the printer",
    ]


def test_retrieve_never_caps_pinned_memories(store: SQLStore, clock: ManualClock) -> None:
    memory = build_memory(store, clock)
    for idx in range(12):
        memory.record("Kevin", f"core fact {idx}", importance=5, pinned=True)
        clock.advance(minutes=1)
    memory.record("Kevin", "coffee is gone", importance=6)
    memory.record("Kevin", "vents hummed", importance=5)

    entries = MemoryRetriever(memory).retrieve("Kevin")

    assert [entry.content for entry in entries[:12]] == [f"core fact {idx}" for idx in range(11, -1, -1)]
    assert all(entry.is_pinned for entry in entries[:12])
    assert [entry.content for entry in entries[12:]] == ["coffee is gone", "vents hummed"]


def test_keyword_matches_fill_the_working_set(store: SQLStore, clock: ManualClock) -> None:
    memory = build_memory(store, clock)
    memory.record("Kevin", "The printer ate my report", importance=7)
    for idx in range(5):
        clock.advance(minutes=1)
        memory.record("Kevin", f"Meeting notes {idx}", importance=7)
    clock.advance(days=2)

    retriever = MemoryRetriever(memory)
    without_hint = [entry.content for entry in retriever.retrieve("Kevin")]
    assert len(without_hint) == 5
    assert "The printer ate my report" not in without_hint

    with_hint = [entry.content for entry in retriever.retrieve("Kevin", context_hint="is the printer on fire again")]
    assert len(with_hint) == 6
    assert "The printer ate my report" in with_hint


def test_fresh_memories_rank_first(store: SQLStore, clock: ManualClock) -> None:
    memory = build_memory(store, clock)
    memory.record("Kevin", "Old but important", importance=7)
    clock.advance(hours=3)
    memory.record("Kevin", "Just happened", importance=5)

    contents = visible_contents(memory, "Kevin")
    assert contents == ["Just happened", "Old but important"]


def test_self_created_memories_are_capped_per_day(store: SQLStore, clock: ManualClock) -> None:
    memory = build_memory(store, clock)
    stored = [memory.record("Kevin", f"thought {idx}", importance=6, memory_type=SELF_CREATED) for idx in range(7)]

    assert all(entry is not None for entry in stored[:6])
    assert stored[6] is None
    assert memory.record("Kevin", "ordinary memory", importance=6) is not None

    clock.advance(days=1)
    assert memory.record("Kevin", "new day thought", importance=6, memory_type=SELF_CREATED) is not None


def test_pin_and_unpin(store: SQLStore, clock: ManualClock) -> None:
    memory = build_memory(store, clock)
    entry = memory.record("Kevin", "Small thing", importance=3)
    assert entry is not None

    assert memory.pin(entry.id) is True
    clock.advance(hours=5)
    assert visible_contents(memory, "Kevin") == ["Small thing"]

    assert memory.pin(entry.id, pinned=False) is True
    assert visible_contents(memory, "Kevin") == []
    assert memory.pin(9999) is False


def test_keyword_extraction_prefers_configured_patterns() -> None:
    keywords = extract_keywords("Honestly the stapler and the printer broke", patterns=["printer"])
    assert keywords[0] == "printer"
    assert "stapler" in keywords
    assert len(keywords) == 3
    assert extract_keywords("", patterns=["printer"]) == []
