"""Notification outbox tests."""

from __future__ import annotations

from typing import Any

from conftest import ManualClock

from core.event_bus import WILDCARD, EventBus
from core.outbox import RELOCATED, RETURNED, NotificationOutbox
from store.schemas import OutboxRecord
from store.sql_store import SQLStore


def test_same_event_is_queued_once_per_day(store: SQLStore, clock: ManualClock) -> None:
    outbox = NotificationOutbox(store, clock=clock)

    assert outbox.emit(RELOCATED, "Kevin", {"to": "rest_area"}) is True
    assert outbox.emit(RELOCATED, "Kevin", {"to": "rest_area"}) is False
    assert outbox.emit(RELOCATED, "Neiv", {"to": "rest_area"}) is True
    assert outbox.emit(RETURNED, "Neiv", subject="Neiv:Kevin") is True

    clock.advance(days=1)
    assert outbox.emit(RELOCATED, "Kevin", {"to": "rest_area"}) is True
    assert store.count(OutboxRecord) == 4


def test_delivery_marks_events_delivered(store: SQLStore, clock: ManualClock) -> None:
    bus = EventBus()
    seen: list[dict[str, Any]] = []
    bus.subscribe(RELOCATED, seen.append)
    outbox = NotificationOutbox(store, event_bus=bus, clock=clock)
    outbox.emit(RELOCATED, "Kevin", {"to": "rest_area"})

    assert outbox.deliver_pending() == {"delivered": 1, "failed": 0}
    assert seen[0]["event_type"] == RELOCATED
    assert seen[0]["character"] == "Kevin"
    assert seen[0]["to"] == "rest_area"
    assert outbox.pending() == []

    assert outbox.deliver_pending() == {"delivered": 0, "failed": 0}
    assert len(seen) == 1


def test_events_without_subscribers_stay_pending(store: SQLStore, clock: ManualClock) -> None:
    bus = EventBus()
    outbox = NotificationOutbox(store, event_bus=bus, clock=clock)
    outbox.emit(RETURNED, "Neiv", subject="Neiv:Kevin")

    assert outbox.deliver_pending() == {"delivered": 0, "failed": 0}
    assert len(outbox.pending()) == 1

    seen: list[dict[str, Any]] = []
    bus.subscribe(WILDCARD, seen.append)
    assert outbox.deliver_pending() == {"delivered": 1, "failed": 0}
    assert seen[0]["idempotency_key"].startswith(f"{RETURNED}:Neiv:Kevin:")


def test_failed_delivery_is_retried_until_attempts_run_out(store: SQLStore, clock: ManualClock) -> None:
    bus = EventBus()

    def broken(payload: dict[str, Any]) -> None:
        raise RuntimeError("webhook down")

    bus.subscribe(RELOCATED, broken)
    outbox = NotificationOutbox(store, event_bus=bus, clock=clock, max_attempts=2)
    outbox.emit(RELOCATED, "Kevin")

    assert outbox.deliver_pending() == {"delivered": 0, "failed": 1}
    row = store.first(OutboxRecord)
    assert row["attempts"] == 1
    assert row["last_error"] == "webhook down"
    assert row["delivered_at"] is None

    assert outbox.deliver_pending() == {"delivered": 0, "failed": 1}
    assert outbox.pending() == []
    assert outbox.deliver_pending() == {"delivered": 0, "failed": 0}


def test_emit_never_raises_when_store_is_unavailable(clock: ManualClock) -> None:
    broken = SQLStore(url="sqlite+pysqlite:////nonexistent-dir/cse.db")
    outbox = NotificationOutbox(broken, clock=clock)

    assert outbox.emit(RELOCATED, "Kevin") is False
    assert outbox.deliver_pending() == {"delivered": 0, "failed": 0}
