"""Scheduled affinity-loss run across all character relationships."""

from __future__ import annotations

import logging
import random
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from characters.registry import CharacterRegistry
from core.outbox import REFLECTION_REQUESTED, NotificationOutbox
from governance.budget_guard import DailyLossBudget
from memory.memory_manager import MemoryManager
from relationships import decay
from relationships.decay import DecaySettings
from relationships.ledger import RelationshipLedger
from store.schemas import (
    AffinityLossLogRecord,
    CharacterStateRecord,
    Clock,
    RelationshipRecord,
    WantRecord,
    utc_now,
)
from store.sql_store import SQLStore

logger = logging.getLogger("cse.decay")

_TEMPLATES = {
    decay.COLLATERAL: (
        "I got pulled in over how close I am to {target}. I still care. I'm just not sure caring is safe here.",
        "Someone wrote my name next to {target}'s on a report. I'm tired of paying for wanting something real.",
    ),
    decay.JEALOUSY: (
        "{target} has been spending a lot of time with {rival}. I try not to notice. I notice anyway.",
        "{target} and {rival}, again. I'm not jealous. I just noticed a pattern.",
    ),
    decay.NATURAL_DECAY: (
        "It's been a while since {target} said anything to me. The quiet is starting to feel intentional.",
        "I thought about reaching out to {target}, then thought about how long it's been since they reached out to me.",
    ),
    decay.UNMET_WANTS: (
        "I wanted something from {target}. The moment passed, but the feeling of being overlooked didn't.",
        "There was something I needed and {target} wasn't there. It's small. It still stings.",
    ),
}

_REFLECTION_PROMPTS = {
    decay.JEALOUSY: "You've noticed {target} spending more time with others than with you. How does that make you feel?",
    decay.COLLATERAL: "You were punished recently because of your closeness with {target}. Is being close to them putting you both at risk?",
    decay.NATURAL_DECAY: "It's been days since {target} spoke to you and your affinity dropped by {delta}. How does the distance feel?",
    decay.UNMET_WANTS: "Something you wanted from {target} never came. Small things accumulate. How do you feel about this relationship?",
}

DEFAULT_MOOD_SHIFTS = {
    decay.NATURAL_DECAY: "wistful",
    decay.JEALOUSY: "jealous",
    decay.UNMET_WANTS: "disappointed",
    decay.COLLATERAL: "anxious",
}


@dataclass(frozen=True)
class CollateralSignal:
    """An outside punishment that lands on a character's bonded relationships."""

    character: str
    severe: bool = False
    note: str = ""


class DecayScheduler:
    """Runs every decay subsystem once per tick and applies the results.

    Each tick is stateless: the per-day budget is rebuilt from the loss log,
    so overlapping or repeated runs never exceed the daily cap.
    """

    def __init__(
        self,
        sql_store: SQLStore,
        ledger: RelationshipLedger,
        memory: MemoryManager | None = None,
        registry: CharacterRegistry | None = None,
        outbox: NotificationOutbox | None = None,
        config: dict[str, Any] | None = None,
        clock: Clock = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        cfg = config or {}
        self.sql_store = sql_store
        self.ledger = ledger
        self.memory = memory
        self.registry = registry or CharacterRegistry()
        self.outbox = outbox
        self.clock = clock
        self.rng = rng or random.Random(cfg.get("seed"))
        self.settings = DecaySettings.from_config(cfg)
        self.narrative_chance = {"small": 0.15, "medium": 0.40, "large": 0.70, **(cfg.get("narrative_chance") or {})}
        self.reflection_chance = {"medium": 0.10, "large": 0.30, **(cfg.get("reflection_chance") or {})}
        self.mood_shifts = {**DEFAULT_MOOD_SHIFTS, **(cfg.get("mood_shifts") or {})}
        self.protected_moods = set(cfg.get("protected_moods", ["exhausted"]))

    def _roll(self, chances: dict[str, float], magnitude: int) -> bool:
        if magnitude >= 5:
            chance = chances.get("large", 0.0)
        elif magnitude >= 3:
            chance = chances.get("medium", 0.0)
        elif magnitude >= 1:
            chance = chances.get("small", 0.0)
        else:
            return False
        return self.rng.random() < chance

    def _relationships(self) -> list[dict[str, Any]]:
        humans = self.registry.humans()
        filters = [RelationshipRecord.target_name.in_(humans)] if humans else []
        return self.sql_store.read(
            RelationshipRecord,
            *filters,
            order_by=[RelationshipRecord.character_name.asc(), RelationshipRecord.target_name.asc()],
        )

    def _lost_today(self, run_date: Any) -> dict[str, int]:
        lost: dict[str, int] = defaultdict(int)
        try:
            for row in self.sql_store.read(AffinityLossLogRecord, AffinityLossLogRecord.run_date == run_date):
                lost[row["character_name"]] += -int(row["applied_delta"])
        except SQLAlchemyError as exc:
            logger.warning("Loss log read failed, assuming nothing lost today: %s", exc)
        return lost

    def _wants(self) -> dict[str, list[dict[str, Any]]]:
        wants: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for row in self.sql_store.read(WantRecord, WantRecord.fulfilled_at.is_(None)):
            wants[row["character_name"]].append(row)
        return wants

    def _eligible(self, character: str) -> bool:
        return not self.registry.is_human(character) and not self.registry.is_excluded(character)

    def tick(
        self,
        dry_run: bool = False,
        only: str | None = None,
        collateral: Iterable[CollateralSignal] = (),
    ) -> list[dict[str, Any]]:
        """Evaluate and apply one decay pass; returns one summary entry per changed relationship."""
        now = self.clock()
        run_date = now.date()
        relationships = self._relationships()
        if not relationships:
            logger.info("No relationships to decay")
            return []

        lost_today = self._lost_today(run_date)
        wants = self._wants()
        punished: dict[str, bool] = {}
        for signal in collateral:
            punished[signal.character] = punished.get(signal.character, False) or signal.severe

        by_character: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for row in relationships:
            by_character[row["character_name"]].append(row)

        summary: list[dict[str, Any]] = []
        logger.info("Decay %s starting over %d relationship(s)", "dry run" if dry_run else "run", len(relationships))
        for character in sorted(by_character):
            if not self._eligible(character) or (only and character != only):
                continue
            budget = DailyLossBudget(-self.settings.daily_cap, already_lost=lost_today.get(character, 0))
            if budget.remaining == 0:
                logger.info("%s already reached today's loss cap", character)
                continue
            profile = self.registry.get(character)
            for row in by_character[character]:
                target = row["target_name"]
                rivals = [
                    other
                    for other in relationships
                    if other["target_name"] == target
                    and other["character_name"] != character
                    and self._eligible(other["character_name"])
                ]
                natural = decay.natural_decay(
                    row, profile.decay_sensitivity, now, self.settings, immune=profile.decay_immune
                )
                jealous, rival = decay.jealousy(row, rivals, profile.jealousy_intensity, now, self.settings)
                wanting, stale_wants = decay.unmet_wants(wants.get(character, []), target, now, self.settings)
                hurt = (
                    decay.collateral(row, punished[character], self.settings)
                    if character in punished
                    else 0
                )
                breakdown = {
                    decay.NATURAL_DECAY: natural,
                    decay.JEALOUSY: jealous,
                    decay.UNMET_WANTS: wanting,
                    decay.COLLATERAL: hurt,
                }
                if not any(breakdown.values()):
                    continue
                floor = decay.decay_floor(row)
                outcome = decay.combine(
                    breakdown, budget, self.settings, max_loss=int(row["affinity"]) - floor
                )
                if outcome.applied_delta == 0:
                    continue

                entry = {
                    "character": character,
                    "target": target,
                    "old_affinity": int(row["affinity"]),
                    "new_affinity": int(row["affinity"]) + outcome.applied_delta,
                    "delta": outcome.applied_delta,
                    "raw_delta": outcome.raw_delta,
                    "breakdown": outcome.breakdown,
                    "dominant_system": outcome.dominant_system,
                }
                logger.info(
                    "%s->%s: %s raw=%d applied=%d",
                    character,
                    target,
                    outcome.breakdown,
                    outcome.raw_delta,
                    outcome.applied_delta,
                )
                if dry_run:
                    summary.append(entry)
                    continue
                applied = self._apply(entry, floor, rival, stale_wants)
                budget.refund(applied - outcome.applied_delta)
                if applied:
                    summary.append(entry)
        return summary

    def _apply(
        self,
        entry: dict[str, Any],
        floor: int,
        rival: str | None,
        stale_wants: list[str],
    ) -> int:
        """Write one decay change and return the delta that actually landed."""
        character, target = entry["character"], entry["target"]
        delta, system = entry["delta"], entry["dominant_system"]
        try:
            change = self.ledger.apply_delta(
                character,
                target,
                delta,
                reason=f"decay: {system} ({delta})",
                max_step=abs(delta),
                interaction=False,
                floor=floor,
            )
        except SQLAlchemyError as exc:
            logger.warning("Decay write for %s->%s failed (non-fatal): %s", character, target, exc)
            return 0
        entry["new_affinity"] = change.new_affinity
        entry["delta"] = change.applied

        try:
            self.sql_store.insert(
                AffinityLossLogRecord,
                character_name=character,
                target_name=target,
                run_date=self.clock().date(),
                dominant_system=system,
                breakdown={**entry["breakdown"], "rival": rival, "wants": stale_wants},
                raw_delta=entry["raw_delta"],
                applied_delta=change.applied,
                created_at=self.clock(),
            )
        except SQLAlchemyError as exc:
            logger.warning("Loss log write for %s->%s failed (non-fatal): %s", character, target, exc)

        magnitude = abs(change.applied)
        if self.memory is not None and (system == decay.COLLATERAL or self._roll(self.narrative_chance, magnitude)):
            self._remember(character, target, system, magnitude, rival)
        self._shift_mood(character, system)
        if self.outbox is not None and self._roll(self.reflection_chance, magnitude):
            prompt = _REFLECTION_PROMPTS[system].format(target=target, delta=change.applied)
            self.outbox.emit(
                REFLECTION_REQUESTED,
                character,
                {"target": target, "system": system, "delta": change.applied, "prompt": prompt},
                subject=f"{character}:{target}",
            )
        return change.applied

    def _remember(self, character: str, target: str, system: str, magnitude: int, rival: str | None) -> None:
        if system == decay.JEALOUSY and not rival:
            system = decay.NATURAL_DECAY
        text = self.rng.choice(_TEMPLATES[system]).format(target=target, rival=rival)
        if system == decay.COLLATERAL:
            importance, hours = 7, 168
        else:
            importance = 6 if magnitude >= 4 else 5
            hours = 24 if system == decay.UNMET_WANTS else 48
        self.memory.record(
            character,
            text,
            importance,
            memory_type=f"affinity_loss_{system}",
            related_characters=[target],
            expires_in=timedelta(hours=hours),
        )

    def _shift_mood(self, character: str, system: str) -> None:
        mood = self.mood_shifts.get(system)
        if not mood:
            return
        try:
            state = self.sql_store.first(
                CharacterStateRecord, CharacterStateRecord.character_name == character
            )
            if state is None or state["mood"] == mood or state["mood"] in self.protected_moods:
                return
            self.sql_store.patch(
                CharacterStateRecord,
                CharacterStateRecord.character_name == character,
                mood=mood,
            )
            logger.info("Mood shift: %s %s -> %s (%s)", character, state["mood"], mood, system)
        except SQLAlchemyError as exc:
            logger.warning("Mood shift for %s failed (non-fatal): %s", character, exc)
