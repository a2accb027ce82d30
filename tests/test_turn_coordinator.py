"""Turn coordination tests."""

from __future__ import annotations

from typing import Any

from conftest import ManualClock

from characters.registry import CharacterRegistry
from governance.turn_coordinator import TurnCoordinator
from store.sql_store import SQLStore


def build_coordinator(
    store: SQLStore,
    clock: ManualClock,
    config: dict[str, Any] | None = None,
    registry: CharacterRegistry | None = None,
) -> TurnCoordinator:
    return TurnCoordinator(store, registry=registry, config=config, clock=clock)


def test_entity_cooldown_threshold_is_sixty_seconds(store: SQLStore, clock: ManualClock) -> None:
    coordinator = build_coordinator(store, clock)
    assert coordinator.claim("Kevin") is True

    clock.advance(seconds=59)
    decision = coordinator.may_act("Kevin")
    assert decision.allowed is False
    assert 0 < decision.cooldown_remaining <= 1

    clock.advance(seconds=2)
    assert coordinator.may_act("Kevin").allowed is True


def test_global_cooldown_blocks_everyone(store: SQLStore, clock: ManualClock) -> None:
    coordinator = build_coordinator(store, clock)
    coordinator.note_action("Kevin")

    clock.advance(seconds=5)
    decision = coordinator.may_act("Neiv")
    assert decision.allowed is False
    assert "Global" in decision.reason

    clock.advance(seconds=8)
    assert coordinator.may_act("Neiv").allowed is True


def test_last_two_speakers_wait_their_turn(store: SQLStore, clock: ManualClock) -> None:
    coordinator = build_coordinator(store, clock)
    coordinator.note_action("Kevin")
    clock.advance(seconds=1)
    coordinator.note_action("Neiv")
    clock.advance(seconds=120)

    assert coordinator.may_act("Kevin").allowed is False
    assert coordinator.may_act("Neiv").allowed is False
    assert coordinator.may_act("Ace").allowed is True

    coordinator.note_action("Ace")
    clock.advance(seconds=30)
    assert coordinator.may_act("Kevin").allowed is True


def test_bypass_skips_every_check(store: SQLStore, clock: ManualClock) -> None:
    coordinator = build_coordinator(store, clock)
    coordinator.claim("Kevin")
    coordinator.note_action("Kevin")

    assert coordinator.may_act("Kevin").allowed is False
    bypassed = coordinator.may_act("Kevin", bypass=True)
    assert bypassed.allowed is True
    assert bypassed.last_spoke_at == clock()


def test_atomic_claim_only_lands_once_per_cooldown(store: SQLStore, clock: ManualClock) -> None:
    coordinator = build_coordinator(store, clock)
    assert coordinator.claim("Kevin") is True
    assert coordinator.claim("Kevin") is False
    assert coordinator.claim("Kevin", force=True) is True

    clock.advance(seconds=61)
    assert coordinator.claim("Kevin") is True


def test_optimistic_claim_always_lands(store: SQLStore, clock: ManualClock) -> None:
    coordinator = build_coordinator(store, clock, config={"atomic_claim": False})
    assert coordinator.claim("Kevin") is True
    assert coordinator.claim("Kevin") is True


def test_cooldown_scales_with_character_multiplier(store: SQLStore, clock: ManualClock) -> None:
    registry = CharacterRegistry({"characters": {"PRNT": {"cooldown_multiplier": 2.0}}})
    coordinator = build_coordinator(store, clock, registry=registry)
    coordinator.claim("PRNT")

    clock.advance(seconds=90)
    assert coordinator.may_act("PRNT").allowed is False
    clock.advance(seconds=31)
    assert coordinator.may_act("PRNT").allowed is True


def test_store_failure_fails_open(clock: ManualClock) -> None:
    broken = SQLStore(url="sqlite+pysqlite:////nonexistent-dir/cse.db")
    coordinator = build_coordinator(broken, clock)

    decision = coordinator.may_act("Kevin")
    assert decision.allowed is True
    assert "failed open" in decision.reason
