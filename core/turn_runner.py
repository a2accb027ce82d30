"""One coordinated speaking turn: check, claim, read, generate, commit.

Only the claim happens before generation. Everything after it is a separate
best-effort write, so a crash mid-commit leaves a partially applied turn,
which the rest of the engine tolerates.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from characters.registry import CharacterRegistry
from characters.resource_machine import ResourceStateMachine
from core.outbox import NotificationOutbox
from governance.audit_logger import AuditLogger
from governance.turn_coordinator import TurnCoordinator
from llm.base_llm import BaseLLM, GenerationError
from llm.prompt_engine.memory_injection import inject_memory
from llm.providers.mock_provider import MockProvider
from memory.memory_manager import MemoryManager
from memory.retrieval import MemoryRetriever
from relationships.ledger import AffinityChange, RelationshipLedger
from store.types import CharacterState, MemoryEntry

logger = logging.getLogger("cse.turns")


@dataclass
class TurnResult:
    """Outcome of a turn attempt."""

    character: str
    allowed: bool
    reason: str
    text: str | None = None
    fallback: bool = False
    state: CharacterState | None = None
    memory: MemoryEntry | None = None
    relationship_changes: list[AffinityChange] = field(default_factory=list)
    delivered: int = 0


class TurnRunner:
    """Runs the turn control flow across the engine's components."""

    def __init__(
        self,
        coordinator: TurnCoordinator,
        resources: ResourceStateMachine,
        memory: MemoryManager,
        retriever: MemoryRetriever,
        ledger: RelationshipLedger,
        backends: Mapping[str, BaseLLM],
        registry: CharacterRegistry | None = None,
        outbox: NotificationOutbox | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.resources = resources
        self.memory = memory
        self.retriever = retriever
        self.ledger = ledger
        self.backends = dict(backends)
        self.registry = registry or CharacterRegistry()
        self.outbox = outbox
        self.audit_logger = audit_logger
        self.fallback = MockProvider()

    def backend_for(self, character: str) -> BaseLLM:
        name = self.registry.get(character).backend
        backend = self.backends.get(name)
        if backend is None:
            logger.warning("No backend '%s' for %s; using mock", name, character)
            backend = self.backends.get("mock", self.fallback)
        return backend

    def take_turn(
        self,
        character: str,
        conversation: list[dict[str, str]],
        context: str | None = None,
        bypass: bool = False,
        memory_note: str | None = None,
        memory_importance: int = 5,
        affinity_deltas: Mapping[str, int] | Iterable[tuple[str, int]] = (),
    ) -> TurnResult:
        """Attempt one turn for character; never raises for store or backend faults."""
        decision = self.coordinator.may_act(character, bypass=bypass)
        if not decision.allowed:
            logger.info("Turn denied for %s: %s", character, decision.reason)
            return self._finish(TurnResult(character, False, decision.reason), conversation)

        if not self.coordinator.claim(character, force=bypass):
            return self._finish(
                TurnResult(character, False, "Another caller claimed this turn."), conversation
            )

        hint = next(
            (m["content"] for m in reversed(conversation) if m.get("role") == "user"),
            None,
        )
        try:
            state = self.resources.get_state(character)
        except SQLAlchemyError as exc:
            logger.warning("State read for %s failed, using defaults: %s", character, exc)
            state = CharacterState(character_name=character)
        try:
            memories = self.retriever.retrieve(character, context_hint=hint)
        except SQLAlchemyError as exc:
            logger.warning("Memory read for %s failed, continuing without: %s", character, exc)
            memories = []

        result = TurnResult(character, True, decision.reason, state=state)
        backend = self.backend_for(character)
        try:
            result.text = backend.generate(character, inject_memory(conversation, state, memories))
        except GenerationError as exc:
            logger.warning("Generation failed for %s via %s, using fallback: %s", character, backend.name, exc)
            result.text = self.fallback.fallback_line(character, hint or "")
            result.fallback = True
            return self._finish(result, conversation)

        self._commit(result, context, decision.last_spoke_at, memory_note, memory_importance, affinity_deltas)
        return self._finish(result, conversation)

    def _commit(
        self,
        result: TurnResult,
        context: str | None,
        previous_spoke_at: Any,
        memory_note: str | None,
        memory_importance: int,
        affinity_deltas: Mapping[str, int] | Iterable[tuple[str, int]],
    ) -> None:
        character = result.character
        try:
            result.state = self.resources.record_action(
                character, context, previous_spoke_at=previous_spoke_at
            )
        except (SQLAlchemyError, ValueError) as exc:
            logger.warning("Spoke transition for %s failed (non-fatal): %s", character, exc)
        location = result.state.location.value if result.state and result.state.location else None
        self.coordinator.note_action(character, location)

        if memory_note:
            result.memory = self.memory.record(character, memory_note, memory_importance)

        pairs = affinity_deltas.items() if isinstance(affinity_deltas, Mapping) else affinity_deltas
        for target, delta in pairs:
            try:
                result.relationship_changes.append(
                    self.ledger.apply_delta(character, target, delta, reason="conversation")
                )
            except SQLAlchemyError as exc:
                logger.warning("Affinity write %s->%s failed (non-fatal): %s", character, target, exc)

    def _finish(self, result: TurnResult, conversation: list[dict[str, str]]) -> TurnResult:
        if self.outbox is not None:
            result.delivered = self.outbox.deliver_pending()["delivered"]
        if self.audit_logger is not None:
            outcome = "denied" if not result.allowed else ("fallback" if result.fallback else "spoke")
            self.audit_logger.log(
                character=result.character,
                outcome=outcome,
                allowed=result.allowed,
                reason=result.reason,
                conversation=conversation,
                delivered=result.delivered,
            )
        return result
