"""State and memory injection for generation prompts."""

from __future__ import annotations

from store.types import CharacterState, MemoryEntry


def describe_state(state: CharacterState) -> str:
    """One short paragraph telling the backend how the character feels right now."""
    if state.energy == 0:
        feeling = "You are completely exhausted. Keep it to a sentence or two; you need rest."
    elif state.patience == 0:
        feeling = "You are out of patience. You might snap, go quiet, or walk away."
    elif state.energy < 30:
        feeling = "You are running low on energy."
    elif state.patience < 30:
        feeling = "Your patience is wearing thin."
    else:
        feeling = "You are doing fine."
    where = state.location.value.replace("_", " ") if state.location else "the main floor"
    return (
        f"Mood: {state.mood}. Energy {state.energy}/100, patience {state.patience}/100. "
        f"You are in {where}. {feeling}"
    )


def inject_memory(
    messages: list[dict[str, str]],
    state: CharacterState,
    memories: list[MemoryEntry],
    max_items: int = 12,
) -> list[dict[str, str]]:
    """Prepend a system message carrying state and memory context."""
    lines = ["How you're feeling right now:", describe_state(state)]
    core = [item for item in memories if item.is_pinned]
    working = [item for item in memories if not item.is_pinned]
    if core:
        lines.append("Things you always remember:")
        lines.extend(f"- {item.content}" for item in core[:max_items])
    if working:
        lines.append("Recent memories:")
        lines.extend(f"- {item.content} (importance {item.importance})" for item in working[:max_items])
    return [{"role": "system", "content": "\n".join(lines)}, *messages]
