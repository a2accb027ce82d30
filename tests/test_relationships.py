"""Relationship ledger tests."""

from __future__ import annotations

from conftest import ManualClock

from core.outbox import BOND_REVIEW, RELATIONSHIP_SHIFTED, NotificationOutbox
from relationships.ledger import RelationshipLedger, auto_label
from store.schemas import OutboxRecord, RelationshipRecord
from store.sql_store import SQLStore


def build_ledger(store: SQLStore, clock: ManualClock) -> RelationshipLedger:
    return RelationshipLedger(store, outbox=NotificationOutbox(store, clock=clock), clock=clock)


def events(store: SQLStore, event_type: str) -> list[dict]:
    return store.read(OutboxRecord, OutboxRecord.event_type == event_type)


def test_large_delta_is_clamped_to_five(store: SQLStore, clock: ManualClock) -> None:
    ledger = build_ledger(store, clock)
    change = ledger.apply_delta("Kevin", "Vale", 12, reason="great chat")

    assert change.created is True
    assert change.applied == 5
    rel = ledger.get("Kevin", "Vale")
    assert rel is not None
    assert rel.affinity == 5
    assert rel.interaction_count == 1
    assert rel.last_interaction_at == clock()

    change = ledger.apply_delta("Kevin", "Vale", 12)
    assert change.applied == 5
    assert ledger.get("Kevin", "Vale").affinity == 10
    assert ledger.get("Kevin", "Vale").interaction_count == 2


def test_affinity_stays_within_bounds(store: SQLStore, clock: ManualClock) -> None:
    ledger = build_ledger(store, clock)
    ledger.seed("Kevin", "Vale", 98)
    assert ledger.apply_delta("Kevin", "Vale", 5).new_affinity == 100

    ledger.seed("Neiv", "Vale", -99)
    assert ledger.apply_delta("Neiv", "Vale", -5).new_affinity == -100


def test_history_and_labels(store: SQLStore, clock: ManualClock) -> None:
    ledger = build_ledger(store, clock)
    ledger.seed("Kevin", "Vale", 48)
    change = ledger.apply_delta("Kevin", "Vale", 4, reason="shared donuts")

    assert change.label == "friend"
    history = ledger.history("Kevin", "Vale")
    assert len(history) == 1
    assert history[0]["old_affinity"] == 48
    assert history[0]["new_affinity"] == 52
    assert history[0]["trigger"] == "shared donuts"


def test_custom_labels_survive_updates(store: SQLStore, clock: ManualClock) -> None:
    ledger = build_ledger(store, clock)
    ledger.seed("Kevin", "Asuna", 85, label="best friend")
    assert ledger.apply_delta("Kevin", "Asuna", -5).label == "best friend"
    assert auto_label(-60, "friend") == "hostile"


def test_notifies_on_notable_shift_once_per_day(store: SQLStore, clock: ManualClock) -> None:
    ledger = build_ledger(store, clock)
    ledger.apply_delta("Kevin", "Vale", 2)
    assert events(store, RELATIONSHIP_SHIFTED) == []

    ledger.apply_delta("Kevin", "Vale", 3)
    ledger.apply_delta("Kevin", "Vale", -4)
    assert len(events(store, RELATIONSHIP_SHIFTED)) == 1

    clock.advance(days=1)
    ledger.apply_delta("Kevin", "Vale", -4)
    assert len(events(store, RELATIONSHIP_SHIFTED)) == 2


def test_bond_formation_review(store: SQLStore, clock: ManualClock) -> None:
    ledger = build_ledger(store, clock)
    ledger.seed("Kevin", "Vale", 83)
    store.patch(
        RelationshipRecord,
        RelationshipRecord.character_name == "Kevin",
        interaction_count=19,
    )
    ledger.apply_delta("Kevin", "Vale", 3)

    reviews = events(store, BOND_REVIEW)
    assert len(reviews) == 1
    assert reviews[0]["payload"]["kind"] == "formation"


def test_bond_crisis_review(store: SQLStore, clock: ManualClock) -> None:
    ledger = build_ledger(store, clock)
    ledger.seed("Neiv", "Vale", 52)
    ledger.set_bond("Neiv", "Vale", "partner", exclusive=True)
    ledger.apply_delta("Neiv", "Vale", -5)

    reviews = events(store, BOND_REVIEW)
    assert len(reviews) == 1
    assert reviews[0]["payload"]["kind"] == "crisis"
    assert ledger.get("Neiv", "Vale").bond_exclusive is True


def test_carers_and_descriptors(store: SQLStore, clock: ManualClock) -> None:
    ledger = build_ledger(store, clock)
    ledger.seed("Neiv", "Kevin", 70)
    ledger.seed("Ghost Dad", "Kevin", 90)
    ledger.seed("Rowena", "Kevin", 50)
    ledger.seed("PRNT", "Kevin", 20)

    assert [rel.character_name for rel in ledger.carers_of("Kevin")] == ["Ghost Dad", "Neiv"]
    assert len(ledger.carers_of("Kevin", limit=None)) == 3
    assert ledger.describe(90) == "deeply bonded"
    assert ledger.describe(0) == "neutral"
    assert ledger.describe(-90) == "despises"


def test_wants_lifecycle(store: SQLStore, clock: ManualClock) -> None:
    ledger = build_ledger(store, clock)
    want = ledger.add_want("Kevin", "I want Vale to notice my desk plant")
    assert [row["id"] for row in ledger.active_wants("Kevin")] == [want["id"]]

    assert ledger.fulfill_want(want["id"]) is True
    assert ledger.fulfill_want(want["id"]) is False
    assert ledger.active_wants("Kevin") == []
