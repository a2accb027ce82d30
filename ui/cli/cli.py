"""CLI entrypoint for the character state engine."""

from __future__ import annotations

import typer

from ui.cli import commands

app = typer.Typer(help="Character State Coordination Engine")
state_app = typer.Typer(help="Character state commands")
turn_app = typer.Typer(help="Turn commands")
memory_app = typer.Typer(help="Memory commands")
relationships_app = typer.Typer(help="Relationship commands")
wants_app = typer.Typer(help="Want commands")
decay_app = typer.Typer(help="Affinity decay commands")
outbox_app = typer.Typer(help="Notification outbox commands")
config_app = typer.Typer(help="Configuration commands")


@state_app.command("show")
def state_show_cmd(name: str) -> None:
    """Show a character's state."""
    commands.state_show(name=name)


@state_app.command("set")
def state_set_cmd(
    name: str,
    mood: str | None = typer.Option(None, help="New mood"),
    energy: int | None = typer.Option(None, help="Energy 0-100 (clamped)"),
    patience: int | None = typer.Option(None, help="Patience 0-100 (clamped)"),
    location: str | None = typer.Option(None, help="main_floor, rest_area, ops_area, meeting, study_area, outing"),
    clear_location: bool = typer.Option(False, "--clear-location", help="Unset the location"),
) -> None:
    """Override a character's state."""
    commands.state_set(
        name=name,
        mood=mood,
        energy=energy,
        patience=patience,
        location=location,
        clear_location=clear_location,
    )


@state_app.command("reset-daily")
def state_reset_daily_cmd() -> None:
    """Run the daily reset for every character."""
    commands.state_reset_daily()


@state_app.command("rooms")
def state_rooms_cmd() -> None:
    """Show who is where."""
    commands.state_rooms()


@turn_app.command("check")
def turn_check_cmd(
    name: str,
    bypass: bool = typer.Option(False, "--bypass", help="Treat as a direct address"),
) -> None:
    """Check cooldowns without taking a turn."""
    commands.turn_check(name=name, bypass=bypass)


@turn_app.command("take")
def turn_take_cmd(
    name: str,
    message: list[str] = typer.Option([], "--message", "-m", help="Conversation line (repeatable)"),
    context: str | None = typer.Option(None, help="Action context / location"),
    bypass: bool = typer.Option(False, "--bypass", help="Direct address skips cooldowns"),
    remember: str | None = typer.Option(None, help="Memory to store if the turn succeeds"),
    importance: int = typer.Option(5, min=1, max=10),
    affinity: list[str] = typer.Option([], "--affinity", "-a", help="TARGET=DELTA (repeatable)"),
) -> None:
    """Take one turn for a character."""
    commands.turn_take(
        name=name,
        messages=message,
        context=context,
        bypass=bypass,
        remember=remember,
        importance=importance,
        affinity=affinity,
    )


@memory_app.command("add")
def memory_add_cmd(
    name: str,
    text: str,
    importance: int = typer.Option(5, min=1, max=10),
    memory_type: str = typer.Option("general", "--type", help="Memory type"),
    pin: bool = typer.Option(False, "--pin", help="Store as a core memory"),
) -> None:
    """Add a memory manually."""
    commands.memory_add(name=name, text=text, importance=importance, memory_type=memory_type, pin=pin)


@memory_app.command("list")
def memory_list_cmd(
    name: str,
    include_expired: bool = typer.Option(False, "--all", help="Include expired memories"),
    limit: int = typer.Option(50, min=1, max=500),
) -> None:
    """List a character's memories."""
    commands.memory_list(name=name, include_expired=include_expired, limit=limit)


@memory_app.command("retrieve")
def memory_retrieve_cmd(name: str, hint: str | None = typer.Option(None, help="Conversation text")) -> None:
    """Show the memory context a turn would use."""
    commands.memory_retrieve(name=name, hint=hint)


@memory_app.command("pin")
def memory_pin_cmd(memory_id: int, unpin: bool = typer.Option(False, "--unpin")) -> None:
    """Pin or unpin a memory."""
    commands.memory_pin(memory_id=memory_id, pinned=not unpin)


@relationships_app.command("show")
def relationships_show_cmd(name: str) -> None:
    """Show a character's relationships."""
    commands.relationships_show(name=name)


@relationships_app.command("adjust")
def relationships_adjust_cmd(
    name: str,
    target: str,
    delta: int,
    reason: str = typer.Option("manual", help="Recorded in history"),
) -> None:
    """Apply an affinity delta (clamped to +/-5)."""
    commands.relationships_adjust(name=name, target=target, delta=delta, reason=reason)


@relationships_app.command("bond")
def relationships_bond_cmd(
    name: str,
    target: str,
    bond_type: str | None = typer.Argument(None),
    exclusive: bool = typer.Option(False, "--exclusive"),
) -> None:
    """Set or clear a bond."""
    commands.relationships_bond(name=name, target=target, bond_type=bond_type, exclusive=exclusive)


@relationships_app.command("history")
def relationships_history_cmd(
    name: str,
    target: str | None = typer.Argument(None),
    limit: int = typer.Option(20, min=1, max=500),
) -> None:
    """Show affinity change history."""
    commands.relationships_history(name=name, target=target, limit=limit)


@wants_app.command("add")
def wants_add_cmd(name: str, text: str) -> None:
    """Record a want."""
    commands.wants_add(name=name, text=text)


@wants_app.command("fulfill")
def wants_fulfill_cmd(want_id: int) -> None:
    """Mark a want fulfilled."""
    commands.wants_fulfill(want_id=want_id)


@decay_app.command("run")
def decay_run_cmd(
    dry_run: bool = typer.Option(False, "--dry-run", help="Compute without writing"),
    character: str | None = typer.Option(None, help="Only this character"),
    collateral: list[str] = typer.Option([], help="NAME or NAME:severe (repeatable)"),
) -> None:
    """Run one affinity decay pass."""
    commands.decay_run(dry_run=dry_run, character=character, collateral=collateral)


@outbox_app.command("deliver")
def outbox_deliver_cmd(limit: int = typer.Option(100, min=1)) -> None:
    """Print and deliver pending notifications."""
    commands.outbox_deliver(limit=limit)


@config_app.command("show")
def config_show_cmd() -> None:
    """Show effective configuration."""
    commands.config_show()


relationships_app.add_typer(wants_app, name="wants")
app.add_typer(state_app, name="state")
app.add_typer(turn_app, name="turn")
app.add_typer(memory_app, name="memory")
app.add_typer(relationships_app, name="relationships")
app.add_typer(decay_app, name="decay")
app.add_typer(outbox_app, name="outbox")
app.add_typer(config_app, name="config")


def main() -> None:
    """Console script entrypoint."""
    app()


if __name__ == "__main__":
    main()
