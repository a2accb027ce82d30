"""Energy, patience, mood, and location transitions for characters."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import case
from sqlalchemy.exc import SQLAlchemyError

from core.outbox import RELOCATED, RETURNED, NotificationOutbox
from relationships.ledger import RelationshipLedger
from store.schemas import CharacterStateRecord, Clock, utc_now
from store.sql_store import SQLStore
from store.types import CharacterState, Location

logger = logging.getLogger("cse.resources")

# (energy, patience) applied per action in each context.
DEFAULT_DELTAS: dict[Location, tuple[int, int]] = {
    Location.MAIN_FLOOR: (-2, 0),
    Location.REST_AREA: (8, 5),
    Location.OPS_AREA: (-3, -1),
    Location.OUTING: (-1, 3),
    Location.MEETING: (-2, 2),
    Location.STUDY_AREA: (-1, 2),
}


def clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, int(value)))


def crossed(before: int, after: int, threshold: int) -> bool:
    return before < threshold <= after


class ResourceStateMachine:
    """Applies per-action resource deltas and lazy rest-area recovery.

    Nothing ticks in the background: recovery is computed from elapsed time
    whenever a state is read and persisted back on the same read.
    """

    def __init__(
        self,
        sql_store: SQLStore,
        outbox: NotificationOutbox | None = None,
        config: dict[str, Any] | None = None,
        clock: Clock = utc_now,
        ledger: RelationshipLedger | None = None,
    ) -> None:
        cfg = config or {}
        self.sql_store = sql_store
        self.outbox = outbox
        self.clock = clock
        self.ledger = ledger
        self.deltas = dict(DEFAULT_DELTAS)
        for tag, values in (cfg.get("deltas") or {}).items():
            self.deltas[Location.parse(tag)] = (int(values[0]), int(values[1]))
        self.recovery_interval = timedelta(minutes=float(cfg.get("recovery_interval_minutes", 10)))
        self.recovery_energy = int(cfg.get("recovery_energy", 15))
        self.recovery_patience = int(cfg.get("recovery_patience", 12))
        self.absence_threshold = timedelta(hours=float(cfg.get("absence_hours", 24)))
        self.carer_min_affinity = int(cfg.get("carer_min_affinity", 50))
        self.carer_limit = int(cfg.get("carer_limit", 2))

    def _row(self, character: str) -> dict[str, Any] | None:
        return self.sql_store.first(
            CharacterStateRecord, CharacterStateRecord.character_name == character
        )

    @staticmethod
    def _stored_location(character: str, tag: str | None) -> Location | None:
        try:
            return Location.parse(tag)
        except ValueError:
            logger.warning("Unknown location %r stored for %s; treating as unset", tag, character)
            return None

    def _to_state(self, row: dict[str, Any]) -> CharacterState:
        return CharacterState(
            character_name=row["character_name"],
            mood=row["mood"],
            energy=clamp(row["energy"]),
            patience=clamp(row["patience"]),
            location=self._stored_location(row["character_name"], row["location"]),
            last_spoke_at=row["last_spoke_at"],
            interactions_today=row["interactions_today"],
            updated_at=row["updated_at"],
        )

    def get_state(self, character: str) -> CharacterState:
        """Read state, applying and persisting any rest-area recovery due."""
        row = self._row(character)
        if row is None:
            return CharacterState(character_name=character)
        state = self._to_state(row)
        if state.location is not Location.REST_AREA or state.updated_at is None:
            return state

        now = self.clock()
        intervals = int((now - state.updated_at) / self.recovery_interval)
        if intervals <= 0:
            return state

        energy = clamp(state.energy + intervals * self.recovery_energy)
        patience = clamp(state.patience + intervals * self.recovery_patience)
        mood = state.mood
        if crossed(state.energy, energy, 50):
            mood = "rested"
        elif crossed(state.energy, energy, 30):
            mood = "recovering"

        recovered = state.model_copy(
            update={"energy": energy, "patience": patience, "mood": mood, "updated_at": now}
        )
        try:
            self.sql_store.patch(
                CharacterStateRecord,
                CharacterStateRecord.character_name == character,
                energy=energy,
                patience=patience,
                mood=mood,
                updated_at=now,
            )
        except SQLAlchemyError as exc:
            logger.warning("Could not persist recovery for %s (non-fatal): %s", character, exc)
        else:
            logger.debug("%s recovered %d interval(s) at rest", character, intervals)
        return recovered

    def record_action(
        self,
        character: str,
        context: str | Location | None = None,
        previous_spoke_at: datetime | None = None,
    ) -> CharacterState:
        """Commit a "spoke" transition for character in the given context.

        `previous_spoke_at` overrides the stored value for absence detection,
        since an early turn claim has already stamped the row.
        """
        state = self.get_state(character)
        now = self.clock()
        requested = Location.parse(context)
        current = state.location

        if requested is not None and requested.is_special:
            effective = requested
            location = requested
        elif current is not None and current.is_special:
            effective = current
            location = current
        else:
            effective = Location.MAIN_FLOOR
            location = requested or current

        energy_delta, patience_delta = self.deltas[effective]
        energy = clamp(state.energy + energy_delta)
        patience = clamp(state.patience + patience_delta)
        mood = state.mood
        relocated = False

        if effective is Location.MAIN_FLOOR and energy == 0 and location is not Location.REST_AREA:
            location = Location.REST_AREA
            mood = "exhausted"
            relocated = True
        elif effective is Location.REST_AREA:
            if crossed(state.energy, energy, 70):
                mood = "refreshed"
            elif crossed(state.energy, energy, 40):
                mood = "recovering"

        fields = {
            "mood": mood,
            "energy": energy,
            "patience": patience,
            "location": location.value if location else None,
            "last_spoke_at": now,
            "interactions_today": state.interactions_today + 1,
            "updated_at": now,
        }
        self.sql_store.upsert(
            CharacterStateRecord, key={"character_name": character}, fields=fields
        )
        logger.info(
            "%s acted in %s: energy %d->%d patience %d->%d",
            character,
            effective.value,
            state.energy,
            energy,
            state.patience,
            patience,
        )

        if relocated:
            self._notify(
                RELOCATED,
                character,
                {"from": effective.value, "to": Location.REST_AREA.value, "reason": "exhausted"},
            )

        previous = previous_spoke_at or state.last_spoke_at
        if previous is not None and now - previous > self.absence_threshold:
            self._notify_carers(character, now - previous)

        return CharacterState(
            character_name=character,
            mood=mood,
            energy=energy,
            patience=patience,
            location=location,
            last_spoke_at=now,
            interactions_today=state.interactions_today + 1,
            updated_at=now,
        )

    def _notify(self, event_type: str, character: str, payload: dict[str, Any], subject: str | None = None) -> None:
        if self.outbox is None:
            return
        self.outbox.emit(event_type, character, payload, subject=subject)

    def _notify_carers(self, character: str, away: timedelta) -> None:
        if self.ledger is None:
            return
        try:
            carers = self.ledger.carers_of(
                character, min_affinity=self.carer_min_affinity, limit=self.carer_limit
            )
        except SQLAlchemyError as exc:
            logger.warning("Carer lookup for %s failed (non-fatal): %s", character, exc)
            return
        hours_away = round(away.total_seconds() / 3600, 1)
        for carer in carers:
            self._notify(
                RETURNED,
                carer.character_name,
                {"returned": character, "hours_away": hours_away, "affinity": carer.affinity},
                subject=f"{carer.character_name}:{character}",
            )

    def update_state(
        self,
        character: str,
        *,
        mood: str | None = None,
        energy: int | None = None,
        patience: int | None = None,
        location: str | Location | None = None,
        clear_location: bool = False,
    ) -> CharacterState:
        """Administrative override; the only way to move a character off a special location."""
        fields: dict[str, Any] = {"updated_at": self.clock()}
        if mood is not None:
            fields["mood"] = mood
        if energy is not None:
            fields["energy"] = clamp(energy)
        if patience is not None:
            fields["patience"] = clamp(patience)
        if clear_location:
            fields["location"] = None
        elif location is not None:
            fields["location"] = Location.parse(location).value
        self.sql_store.upsert(CharacterStateRecord, key={"character_name": character}, fields=fields)
        logger.info("State override for %s: %s", character, sorted(fields))
        row = self._row(character)
        return self._to_state(row) if row else CharacterState(character_name=character)

    def reset_daily(self) -> int:
        """Start a new day for every character and return how many rows changed.

        Resting characters get their pending recovery first, since the reset
        moves `updated_at` forward.
        """
        for row in self.sql_store.read(
            CharacterStateRecord, CharacterStateRecord.location == Location.REST_AREA.value
        ):
            self.get_state(row["character_name"])

        energy = CharacterStateRecord.energy + 30
        patience = CharacterStateRecord.patience + 20
        count = self.sql_store.patch(
            CharacterStateRecord,
            interactions_today=0,
            energy=case((energy > 100, 100), else_=energy),
            patience=case((patience > 100, 100), else_=patience),
            mood="neutral",
            updated_at=self.clock(),
        )
        logger.info("Daily reset applied to %d character(s)", count)
        return count

    def room_presence(self) -> dict[str, list[str]]:
        """Group character names by location; unset locations count as main floor."""
        rooms: dict[str, list[str]] = defaultdict(list)
        for row in self.sql_store.read(
            CharacterStateRecord, order_by=[CharacterStateRecord.character_name.asc()]
        ):
            rooms[row["location"] or Location.MAIN_FLOOR.value].append(row["character_name"])
        return dict(rooms)
