"""Typer command handlers."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import typer

from core.orchestrator import Orchestrator, RuntimeBundle
from relationships.decay_scheduler import CollateralSignal


def _runtime(root: Path | None = None) -> RuntimeBundle:
    bundle = Orchestrator(root=root).build()
    level = str(bundle.config.get("logging", {}).get("level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return bundle


def _echo(payload: object) -> None:
    typer.echo(json.dumps(_json_safe(payload), indent=2, ensure_ascii=False))


def state_show(name: str) -> None:
    """Show one character's state, applying any recovery due."""
    bundle = _runtime()
    _echo(bundle.resources.get_state(name).model_dump())


def state_set(
    name: str,
    mood: str | None,
    energy: int | None,
    patience: int | None,
    location: str | None,
    clear_location: bool,
) -> None:
    """Administrative state override."""
    bundle = _runtime()
    try:
        state = bundle.resources.update_state(
            name,
            mood=mood,
            energy=energy,
            patience=patience,
            location=location,
            clear_location=clear_location,
        )
    except ValueError as exc:
        typer.echo(f"Invalid value: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    _echo(state.model_dump())


def state_reset_daily() -> None:
    bundle = _runtime()
    count = bundle.resources.reset_daily()
    typer.echo(f"Daily reset applied to {count} character(s).")


def state_rooms() -> None:
    bundle = _runtime()
    _echo(bundle.resources.room_presence())


def turn_check(name: str, bypass: bool) -> None:
    """Show whether a character may act now, without claiming."""
    bundle = _runtime()
    decision = bundle.coordinator.may_act(name, bypass=bypass)
    _echo(
        {
            "allowed": decision.allowed,
            "reason": decision.reason,
            "seconds_since_last": decision.seconds_since_last,
            "cooldown_remaining": decision.cooldown_remaining,
        }
    )


def turn_take(
    name: str,
    messages: list[str],
    context: str | None,
    bypass: bool,
    remember: str | None,
    importance: int,
    affinity: list[str],
) -> None:
    """Run a full turn for a character."""
    deltas: list[tuple[str, int]] = []
    for item in affinity:
        target, sep, value = item.rpartition("=")
        if not sep or not target:
            typer.echo(f"Expected TARGET=DELTA, got {item!r}", err=True)
            raise typer.Exit(code=2)
        deltas.append((target, int(value)))

    bundle = _runtime()
    conversation = [{"role": "user", "content": text} for text in messages]
    result = bundle.turns.take_turn(
        name,
        conversation,
        context=context,
        bypass=bypass,
        memory_note=remember,
        memory_importance=importance,
        affinity_deltas=deltas,
    )
    if not result.allowed:
        typer.echo(f"{name} did not speak: {result.reason}")
        return
    typer.echo(f"{name}: {result.text}")
    if result.fallback:
        typer.echo("(fallback response; state left unchanged)")
    if result.state is not None:
        typer.echo(
            f"mood={result.state.mood} energy={result.state.energy} "
            f"patience={result.state.patience} location={result.state.location}"
        )
    for change in result.relationship_changes:
        typer.echo(f"{change.character} -> {change.target}: {change.old_affinity} -> {change.new_affinity}")


def memory_add(name: str, text: str, importance: int, memory_type: str, pin: bool) -> None:
    bundle = _runtime()
    entry = bundle.memory.record(name, text, importance, memory_type=memory_type, pinned=pin)
    if entry is None:
        typer.echo("Memory was not stored (empty text or daily cap reached).")
        return
    _echo(entry.model_dump())


def memory_list(name: str, include_expired: bool, limit: int) -> None:
    bundle = _runtime()
    entries = bundle.memory.list_memories(name, include_expired=include_expired, limit=limit)
    _echo([entry.model_dump() for entry in entries])


def memory_retrieve(name: str, hint: str | None) -> None:
    """Show the memory context a turn would see."""
    bundle = _runtime()
    _echo([entry.model_dump() for entry in bundle.retriever.retrieve(name, context_hint=hint)])


def memory_pin(memory_id: int, pinned: bool) -> None:
    bundle = _runtime()
    if not bundle.memory.pin(memory_id, pinned):
        typer.echo(f"No memory with id {memory_id}.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Memory {memory_id} {'pinned' if pinned else 'unpinned'}.")


def relationships_show(name: str) -> None:
    bundle = _runtime()
    rows = []
    for rel in bundle.ledger.list_for(name):
        payload = rel.model_dump()
        payload["descriptor"] = bundle.ledger.describe(rel.affinity)
        rows.append(payload)
    _echo(rows)


def relationships_adjust(name: str, target: str, delta: int, reason: str) -> None:
    bundle = _runtime()
    change = bundle.ledger.apply_delta(name, target, delta, reason=reason)
    bundle.outbox.deliver_pending()
    typer.echo(f"{name} -> {target}: {change.old_affinity} -> {change.new_affinity} ({change.label})")


def relationships_bond(name: str, target: str, bond_type: str | None, exclusive: bool) -> None:
    bundle = _runtime()
    bundle.ledger.set_bond(name, target, bond_type, exclusive=exclusive)
    typer.echo(f"Bond {name} -> {target}: {bond_type or 'cleared'}")


def relationships_history(name: str, target: str | None, limit: int) -> None:
    bundle = _runtime()
    _echo(bundle.ledger.history(name, target, limit=limit))


def wants_add(name: str, text: str) -> None:
    bundle = _runtime()
    _echo(bundle.ledger.add_want(name, text))


def wants_fulfill(want_id: int) -> None:
    bundle = _runtime()
    if not bundle.ledger.fulfill_want(want_id):
        typer.echo(f"No open want with id {want_id}.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Want {want_id} fulfilled.")


def decay_run(dry_run: bool, character: str | None, collateral: list[str]) -> None:
    """Run one decay pass."""
    signals = []
    for item in collateral:
        name, _, severity = item.partition(":")
        signals.append(CollateralSignal(character=name, severe=severity.lower() == "severe"))
    bundle = _runtime()
    summary = bundle.decay.tick(dry_run=dry_run, only=character, collateral=signals)
    if not dry_run:
        bundle.outbox.deliver_pending()
    _echo({"dry_run": dry_run, "changes": summary})


def outbox_deliver(limit: int) -> None:
    bundle = _runtime()
    bundle.event_bus.subscribe("*", lambda event: typer.echo(json.dumps(_json_safe(event))))
    _echo(bundle.outbox.deliver_pending(limit=limit))


def config_show() -> None:
    """Show effective runtime config."""
    bundle = _runtime()
    _echo(bundle.config)


def _json_safe(payload: object) -> object:
    """Convert datetimes and enums to strings for JSON output."""
    if isinstance(payload, dict):
        return {str(k): _json_safe(v) for k, v in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [_json_safe(v) for v in payload]
    if hasattr(payload, "isoformat"):
        return payload.isoformat()
    if isinstance(payload, str):
        return str(payload)
    return payload
