"""Advisory turn-taking policy backed by the shared store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from characters.registry import CharacterRegistry
from store.schemas import ActionRecord, CharacterStateRecord, Clock, utc_now
from store.sql_store import SQLStore

logger = logging.getLogger("cse.turns")


@dataclass
class TurnDecision:
    """Represents an allow/deny turn decision."""

    allowed: bool
    reason: str
    seconds_since_last: float | None = None
    cooldown_remaining: float = 0.0
    last_spoke_at: datetime | None = None


class TurnCoordinator:
    """Decides whether a character may take a turn right now.

    Every check reads the store fresh; concurrent callers can both pass before
    either records its action, which the early claim only narrows.
    """

    def __init__(
        self,
        sql_store: SQLStore,
        registry: CharacterRegistry | None = None,
        config: dict[str, Any] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        cfg = config or {}
        self.sql_store = sql_store
        self.registry = registry or CharacterRegistry()
        self.clock = clock
        self.global_cooldown = timedelta(seconds=float(cfg.get("global_cooldown_seconds", 12)))
        self.entity_cooldown_seconds = float(cfg.get("entity_cooldown_seconds", 60))
        self.recent_speakers = int(cfg.get("recent_speakers", 2))
        self.atomic_claim = bool(cfg.get("atomic_claim", True))

    def entity_cooldown(self, character: str) -> timedelta:
        multiplier = self.registry.get(character).cooldown_multiplier
        return timedelta(seconds=self.entity_cooldown_seconds * multiplier)

    def may_act(self, character: str, bypass: bool = False) -> TurnDecision:
        """Evaluate cooldown policy for one character."""
        if bypass:
            try:
                state = self.sql_store.first(
                    CharacterStateRecord, CharacterStateRecord.character_name == character
                )
            except SQLAlchemyError as exc:
                logger.warning("State read for %s failed on direct address: %s", character, exc)
                state = None
            return TurnDecision(
                True,
                "Direct address bypasses cooldowns.",
                last_spoke_at=state["last_spoke_at"] if state else None,
            )

        now = self.clock()
        try:
            recent = self.sql_store.read(
                ActionRecord,
                order_by=[ActionRecord.created_at.desc(), ActionRecord.id.desc()],
                limit=max(self.recent_speakers, 1),
            )
            state = self.sql_store.first(
                CharacterStateRecord, CharacterStateRecord.character_name == character
            )
        except SQLAlchemyError as exc:
            logger.warning("Cooldown check failed for %s, allowing: %s", character, exc)
            return TurnDecision(True, f"Cooldown check failed open: {exc.__class__.__name__}")

        last_spoke_at = state["last_spoke_at"] if state else None

        if recent:
            since_global = (now - recent[0]["created_at"]).total_seconds()
            if since_global < self.global_cooldown.total_seconds():
                return TurnDecision(
                    False,
                    "Global cooldown active.",
                    seconds_since_last=since_global,
                    cooldown_remaining=self.global_cooldown.total_seconds() - since_global,
                    last_spoke_at=last_spoke_at,
                )

        recent_names = [row["character_name"] for row in recent[: self.recent_speakers]]
        if character in recent_names:
            return TurnDecision(
                False,
                f"{character} is among the last {self.recent_speakers} speakers.",
                last_spoke_at=last_spoke_at,
            )

        if last_spoke_at is not None:
            since_entity = (now - last_spoke_at).total_seconds()
            cooldown = self.entity_cooldown(character).total_seconds()
            if since_entity < cooldown:
                return TurnDecision(
                    False,
                    f"{character} spoke {int(since_entity)}s ago.",
                    seconds_since_last=since_entity,
                    cooldown_remaining=cooldown - since_entity,
                    last_spoke_at=last_spoke_at,
                )
            return TurnDecision(
                True, "Allowed by policy.", seconds_since_last=since_entity, last_spoke_at=last_spoke_at
            )

        return TurnDecision(True, "Allowed by policy.")

    def claim(self, character: str, force: bool = False) -> bool:
        """Stamp last_spoke_at before generation so other callers back off.

        With atomic claims the stamp only lands when the previous one is older
        than the character's cooldown; a lost claim returns False. `force`
        stamps unconditionally, as direct addresses do.
        """
        now = self.clock()
        try:
            if not self.atomic_claim or force:
                self.sql_store.upsert(
                    CharacterStateRecord,
                    key={"character_name": character},
                    fields={"last_spoke_at": now},
                )
                return True

            cutoff = now - self.entity_cooldown(character)
            if self.sql_store.claim(
                CharacterStateRecord,
                CharacterStateRecord.character_name == character,
                or_(
                    CharacterStateRecord.last_spoke_at.is_(None),
                    CharacterStateRecord.last_spoke_at <= cutoff,
                ),
                last_spoke_at=now,
            ):
                return True
            if self.sql_store.count(
                CharacterStateRecord, CharacterStateRecord.character_name == character
            ):
                logger.info("Lost turn claim for %s", character)
                return False
            try:
                self.sql_store.insert(
                    CharacterStateRecord, character_name=character, last_spoke_at=now
                )
            except IntegrityError:
                logger.info("Lost turn claim for %s to a concurrent first insert", character)
                return False
            return True
        except SQLAlchemyError as exc:
            logger.warning("Early claim for %s failed (non-fatal): %s", character, exc)
            return True

    def note_action(self, character: str, location: str | None = None) -> None:
        """Record a committed action for the global cooldown window."""
        try:
            self.sql_store.insert(
                ActionRecord, character_name=character, location=location, created_at=self.clock()
            )
        except SQLAlchemyError as exc:
            logger.warning("Could not record action for %s (non-fatal): %s", character, exc)
