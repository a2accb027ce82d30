"""Directed affinity ledger between characters."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.outbox import BOND_REVIEW, RELATIONSHIP_SHIFTED, NotificationOutbox
from store.schemas import (
    Clock,
    RelationshipHistoryRecord,
    RelationshipRecord,
    WantRecord,
    utc_now,
)
from store.sql_store import SQLStore
from store.types import Relationship

logger = logging.getLogger("cse.relationships")

AUTO_LABELS = ("close bond", "friend", "friendly", "acquaintance", "wary", "hostile", "enemy")

_DESCRIPTORS = (
    (80, "deeply bonded"),
    (50, "fond of"),
    (20, "warming to"),
    (-19, "neutral"),
    (-49, "wary of"),
    (-79, "hostile toward"),
)

_LABELS = (
    (80, "close bond"),
    (50, "friend"),
    (20, "friendly"),
    (-19, "acquaintance"),
    (-49, "wary"),
    (-79, "hostile"),
)


def clamp_affinity(value: int) -> int:
    return max(-100, min(100, int(value)))


def auto_label(affinity: int, existing: str | None = None) -> str:
    """Generic label for an affinity; custom labels set by hand are kept."""
    if existing and existing.lower() not in AUTO_LABELS:
        return existing
    for threshold, label in _LABELS:
        if affinity >= threshold:
            return label
    return "enemy"


@dataclass
class AffinityChange:
    """Result of one ledger write."""

    character: str
    target: str
    old_affinity: int
    new_affinity: int
    label: str | None
    created: bool = False

    @property
    def applied(self) -> int:
        return self.new_affinity - self.old_affinity


class RelationshipLedger:
    """Reads and writes relationship rows, their history, and outstanding wants."""

    def __init__(
        self,
        sql_store: SQLStore,
        outbox: NotificationOutbox | None = None,
        config: dict[str, Any] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        cfg = config or {}
        self.sql_store = sql_store
        self.outbox = outbox
        self.clock = clock
        self.max_step = int(cfg.get("max_step", 5))
        self.notify_threshold = int(cfg.get("notify_threshold", 3))
        self.bond_formation_affinity = int(cfg.get("bond_formation_affinity", 85))
        self.bond_formation_interactions = int(cfg.get("bond_formation_interactions", 20))
        self.bond_crisis_affinity = int(cfg.get("bond_crisis_affinity", 50))

    @staticmethod
    def describe(affinity: int) -> str:
        for threshold, descriptor in _DESCRIPTORS:
            if affinity >= threshold:
                return descriptor
        return "despises"

    def _row(self, character: str, target: str) -> dict[str, Any] | None:
        return self.sql_store.first(
            RelationshipRecord,
            RelationshipRecord.character_name == character,
            RelationshipRecord.target_name == target,
        )

    def get(self, character: str, target: str) -> Relationship | None:
        row = self._row(character, target)
        return self._to_model(row) if row else None

    def list_for(self, character: str) -> list[Relationship]:
        rows = self.sql_store.read(
            RelationshipRecord,
            RelationshipRecord.character_name == character,
            order_by=[RelationshipRecord.affinity.desc(), RelationshipRecord.target_name.asc()],
        )
        return [self._to_model(row) for row in rows]

    def carers_of(self, target: str, min_affinity: int = 50, limit: int | None = 2) -> list[Relationship]:
        """Characters whose affinity toward target is at least min_affinity, warmest first."""
        rows = self.sql_store.read(
            RelationshipRecord,
            RelationshipRecord.target_name == target,
            RelationshipRecord.affinity >= min_affinity,
            order_by=[RelationshipRecord.affinity.desc()],
            limit=limit,
        )
        return [self._to_model(row) for row in rows]

    def apply_delta(
        self,
        character: str,
        target: str,
        delta: int,
        reason: str = "",
        *,
        max_step: int | None = None,
        interaction: bool = True,
        floor: int | None = None,
    ) -> AffinityChange:
        """Shift character's affinity toward target.

        The step is clamped to +/- max_step (default 5) and the result to
        [-100, 100]; a missing row is created with the clamped step as its
        affinity. `floor` stops losses below a value without undoing anything
        already below it.
        """
        limit = self.max_step if max_step is None else int(max_step)
        step = max(-limit, min(limit, int(delta)))
        now = self.clock()
        row = self._row(character, target)

        if row is None:
            new_affinity = clamp_affinity(step)
            label = auto_label(new_affinity)
            try:
                self.sql_store.insert(
                    RelationshipRecord,
                    character_name=character,
                    target_name=target,
                    affinity=new_affinity,
                    seed_affinity=0,
                    relationship_label=label,
                    interaction_count=1 if interaction else 0,
                    last_interaction_at=now if interaction else None,
                    created_at=now,
                    updated_at=now,
                )
                change = AffinityChange(character, target, 0, new_affinity, label, created=True)
            except IntegrityError:
                logger.info("Relationship %s->%s created concurrently; updating", character, target)
                row = self._row(character, target)
                if row is None:
                    raise
        if row is not None:
            old_affinity = int(row["affinity"])
            new_affinity = clamp_affinity(old_affinity + step)
            if floor is not None and step < 0:
                new_affinity = max(new_affinity, min(old_affinity, floor))
            label = auto_label(new_affinity, row["relationship_label"])
            fields: dict[str, Any] = {
                "affinity": new_affinity,
                "relationship_label": label,
                "updated_at": now,
            }
            if interaction:
                fields["interaction_count"] = RelationshipRecord.interaction_count + 1
                fields["last_interaction_at"] = now
            self.sql_store.patch(RelationshipRecord, RelationshipRecord.id == row["id"], **fields)
            change = AffinityChange(character, target, old_affinity, new_affinity, label)
            self._review_bond(row, change)

        if change.applied:
            self._write_history(change, reason, row["relationship_label"] if row else None)
            logger.info(
                "Relationship %s->%s: %d -> %d (%s)",
                character,
                target,
                change.old_affinity,
                change.new_affinity,
                reason or "unspecified",
            )
        if abs(change.applied) >= self.notify_threshold:
            self._notify(
                RELATIONSHIP_SHIFTED,
                character,
                {
                    "target": target,
                    "old_affinity": change.old_affinity,
                    "new_affinity": change.new_affinity,
                    "reason": reason,
                },
                subject=f"{character}:{target}",
            )
        return change

    def _review_bond(self, row: dict[str, Any], change: AffinityChange) -> None:
        count = int(row["interaction_count"]) + 1
        threshold = self.bond_formation_affinity
        if (
            not row["bond_type"]
            and change.old_affinity < threshold <= change.new_affinity
            and count >= self.bond_formation_interactions
        ):
            self._notify(
                BOND_REVIEW,
                change.character,
                {"target": change.target, "kind": "formation", "affinity": change.new_affinity},
                subject=f"{change.character}:{change.target}:formation",
            )
        elif row["bond_type"] and change.old_affinity >= self.bond_crisis_affinity > change.new_affinity:
            self._notify(
                BOND_REVIEW,
                change.character,
                {
                    "target": change.target,
                    "kind": "crisis",
                    "bond_type": row["bond_type"],
                    "affinity": change.new_affinity,
                },
                subject=f"{change.character}:{change.target}:crisis",
            )

    def _write_history(self, change: AffinityChange, reason: str, old_label: str | None) -> None:
        try:
            self.sql_store.insert(
                RelationshipHistoryRecord,
                character_name=change.character,
                target_name=change.target,
                old_affinity=change.old_affinity,
                new_affinity=change.new_affinity,
                old_label=old_label,
                new_label=change.label,
                trigger=reason,
                created_at=self.clock(),
            )
        except SQLAlchemyError as exc:
            logger.warning("History write for %s->%s failed (non-fatal): %s", change.character, change.target, exc)

    def history(self, character: str, target: str | None = None, limit: int = 20) -> list[dict[str, Any]]:
        filters = [RelationshipHistoryRecord.character_name == character]
        if target is not None:
            filters.append(RelationshipHistoryRecord.target_name == target)
        return self.sql_store.read(
            RelationshipHistoryRecord,
            *filters,
            order_by=[RelationshipHistoryRecord.id.desc()],
            limit=limit,
        )

    def seed(self, character: str, target: str, affinity: int, label: str | None = None) -> bool:
        """Set a starting affinity, which also becomes the decay floor. Returns True if created."""
        value = clamp_affinity(affinity)
        now = self.clock()
        return self.sql_store.upsert(
            RelationshipRecord,
            key={"character_name": character, "target_name": target},
            fields={
                "affinity": value,
                "seed_affinity": value,
                "relationship_label": label or auto_label(value),
                "updated_at": now,
            },
            defaults={"created_at": now},
        )

    def set_bond(
        self,
        character: str,
        target: str,
        bond_type: str | None,
        exclusive: bool = False,
    ) -> bool:
        now = self.clock()
        return self.sql_store.upsert(
            RelationshipRecord,
            key={"character_name": character, "target_name": target},
            fields={"bond_type": bond_type, "bond_exclusive": bool(exclusive and bond_type), "updated_at": now},
            defaults={"relationship_label": auto_label(0), "created_at": now},
        )

    def add_want(self, character: str, want_text: str) -> dict[str, Any]:
        return self.sql_store.insert(
            WantRecord, character_name=character, want_text=want_text.strip(), created_at=self.clock()
        )

    def fulfill_want(self, want_id: int) -> bool:
        return bool(
            self.sql_store.patch(
                WantRecord,
                WantRecord.id == want_id,
                WantRecord.fulfilled_at.is_(None),
                fulfilled_at=self.clock(),
            )
        )

    def active_wants(self, character: str) -> list[dict[str, Any]]:
        return self.sql_store.read(
            WantRecord,
            WantRecord.character_name == character,
            WantRecord.fulfilled_at.is_(None),
            order_by=[WantRecord.created_at.asc()],
        )

    def _notify(self, event_type: str, character: str, payload: dict[str, Any], subject: str) -> None:
        if self.outbox is not None:
            self.outbox.emit(event_type, character, payload, subject=subject)

    @staticmethod
    def _to_model(row: dict[str, Any]) -> Relationship:
        return Relationship(
            character_name=row["character_name"],
            target_name=row["target_name"],
            affinity=clamp_affinity(row["affinity"]),
            seed_affinity=row["seed_affinity"],
            relationship_label=row["relationship_label"],
            bond_type=row["bond_type"],
            bond_exclusive=bool(row["bond_exclusive"]),
            interaction_count=row["interaction_count"],
            last_interaction_at=row["last_interaction_at"],
            created_at=row["created_at"],
        )
