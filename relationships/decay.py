"""Affinity-loss subsystems.

Every function here is pure: it takes relationship rows (plain dicts as the
store returns them) plus the current time and returns a non-positive delta
already limited by that subsystem's own cap.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from governance.budget_guard import DailyLossBudget

NATURAL_DECAY = "natural_decay"
JEALOUSY = "jealousy"
UNMET_WANTS = "unmet_wants"
COLLATERAL = "collateral"

SYSTEM_CAPS = {
    NATURAL_DECAY: -5,
    JEALOUSY: -4,
    UNMET_WANTS: -2,
    COLLATERAL: -3,
}


@dataclass(frozen=True)
class DecaySettings:
    """Tunables shared by all subsystems."""

    grace_days: int = 2
    max_decay_days: int = 5
    jealousy_threshold: int = 50
    jealousy_ratio: float = 1.5
    jealousy_neglect_days: int = 3
    rival_active_days: int = 2
    exclusive_multiplier: float = 1.5
    unmet_want_hours: float = 8
    daily_cap: int = -8
    system_caps: dict[str, int] = field(default_factory=lambda: dict(SYSTEM_CAPS))

    @classmethod
    def from_config(cls, cfg: dict[str, Any] | None) -> DecaySettings:
        cfg = cfg or {}
        caps = dict(SYSTEM_CAPS)
        caps.update({key: int(value) for key, value in (cfg.get("system_caps") or {}).items()})
        return cls(
            grace_days=int(cfg.get("grace_days", 2)),
            max_decay_days=int(cfg.get("max_decay_days", 5)),
            jealousy_threshold=int(cfg.get("jealousy_threshold", 50)),
            jealousy_ratio=float(cfg.get("jealousy_ratio", 1.5)),
            jealousy_neglect_days=int(cfg.get("jealousy_neglect_days", 3)),
            rival_active_days=int(cfg.get("rival_active_days", 2)),
            exclusive_multiplier=float(cfg.get("exclusive_multiplier", 1.5)),
            unmet_want_hours=float(cfg.get("unmet_want_hours", 8)),
            daily_cap=int(cfg.get("daily_cap", -8)),
            system_caps=caps,
        )


def decay_floor(relationship: dict[str, Any]) -> int:
    return max(int(relationship.get("seed_affinity") or 0), 0)


def _days_since(moment: datetime | None, now: datetime) -> float | None:
    if moment is None:
        return None
    return (now - moment).total_seconds() / 86400


def natural_decay(
    relationship: dict[str, Any],
    sensitivity: float,
    now: datetime,
    settings: DecaySettings = DecaySettings(),
    immune: bool = False,
) -> int:
    """Drift from neglect once the grace period has passed, never below the floor."""
    if immune or sensitivity <= 0:
        return 0
    last = relationship.get("last_interaction_at") or relationship.get("created_at")
    days = _days_since(last, now)
    if days is None:
        return 0
    days_past_grace = math.floor(days) - settings.grace_days
    if days_past_grace <= 0:
        return 0
    raw = math.floor(-sensitivity * min(days_past_grace, settings.max_decay_days))
    delta = max(raw, settings.system_caps[NATURAL_DECAY])
    affinity = int(relationship["affinity"])
    floor = decay_floor(relationship)
    if affinity + delta < floor:
        return min(0, floor - affinity)
    return delta


def jealousy(
    relationship: dict[str, Any],
    rivals: list[dict[str, Any]],
    intensity: float,
    now: datetime,
    settings: DecaySettings = DecaySettings(),
) -> tuple[int, str | None]:
    """Return (delta, rival name) when the target favors someone else."""
    if intensity <= 0 or int(relationship["affinity"]) < settings.jealousy_threshold or not rivals:
        return 0, None

    mine = int(relationship.get("interaction_count") or 0)
    busiest = max(rivals, key=lambda row: int(row.get("interaction_count") or 0))
    jealous_of: str | None = busiest["character_name"]
    triggered = mine > 0 and int(busiest.get("interaction_count") or 0) >= mine * settings.jealousy_ratio

    my_days = _days_since(relationship.get("last_interaction_at"), now)
    ignored = my_days is None or my_days >= settings.jealousy_neglect_days
    active = [
        (days, row["character_name"])
        for row in rivals
        if (days := _days_since(row.get("last_interaction_at"), now)) is not None
        and days < settings.rival_active_days
    ]
    if ignored and active:
        triggered = True
        jealous_of = min(active)[1]

    if not triggered:
        return 0, None
    bonus = settings.exclusive_multiplier if relationship.get("bond_exclusive") else 1.0
    raw = math.floor(-2 * intensity * bonus)
    return max(raw, settings.system_caps[JEALOUSY]), jealous_of


def unmet_wants(
    wants: list[dict[str, Any]],
    target: str,
    now: datetime,
    settings: DecaySettings = DecaySettings(),
) -> tuple[int, list[str]]:
    """-1 per stale want that names the target."""
    threshold = timedelta(hours=settings.unmet_want_hours)
    needle = target.lower()
    stale = [
        want["want_text"]
        for want in wants
        if needle in (want.get("want_text") or "").lower() and now - want["created_at"] > threshold
    ]
    if not stale:
        return 0, []
    return max(-len(stale), settings.system_caps[UNMET_WANTS]), stale


def collateral(
    relationship: dict[str, Any],
    severe: bool,
    settings: DecaySettings = DecaySettings(),
) -> int:
    """Loss from an outside punishment signal; only bonded pairs feel it."""
    if not relationship.get("bond_type"):
        return 0
    raw = -3 if severe else -2
    return max(raw, settings.system_caps[COLLATERAL])


@dataclass
class DecayOutcome:
    """Combined result for one relationship."""

    breakdown: dict[str, int]
    raw_delta: int
    applied_delta: int
    dominant_system: str | None


def dominant_system(breakdown: dict[str, int]) -> str | None:
    """The subsystem with the largest loss; earlier systems win ties."""
    best: str | None = None
    for system in (NATURAL_DECAY, JEALOUSY, COLLATERAL, UNMET_WANTS):
        delta = breakdown.get(system, 0)
        if delta < 0 and (best is None or delta < breakdown[best]):
            best = system
    return best


def combine(
    breakdown: dict[str, int],
    budget: DailyLossBudget,
    settings: DecaySettings = DecaySettings(),
    max_loss: int | None = None,
) -> DecayOutcome:
    """Cap each subsystem, sum, then charge the total against today's budget.

    `max_loss` is the room left above the relationship's floor; only what
    is actually applied is charged.
    """
    capped = {
        system: max(min(0, int(delta)), settings.system_caps.get(system, int(delta)))
        for system, delta in breakdown.items()
    }
    raw = sum(capped.values())
    limited = raw if max_loss is None else max(raw, -max(0, max_loss))
    applied = -budget.charge(-limited) if limited < 0 else 0
    return DecayOutcome(
        breakdown=capped,
        raw_delta=raw,
        applied_delta=applied,
        dominant_system=dominant_system(capped),
    )
