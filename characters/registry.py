"""Per-character capability registry."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class CharacterProfile:
    """Tunables that vary by character identity."""

    name: str
    cooldown_multiplier: float = 1.0
    decay_sensitivity: float = 0.0
    jealousy_intensity: float = 0.0
    decay_immune: bool = False
    excluded: bool = False
    is_human: bool = False
    backend: str = "mock"
    tags: tuple[str, ...] = field(default_factory=tuple)


_PROFILE_FIELDS = {
    "cooldown_multiplier": float,
    "decay_sensitivity": float,
    "jealousy_intensity": float,
    "decay_immune": bool,
    "excluded": bool,
    "backend": str,
}


class CharacterRegistry:
    """Maps a stable character name to its capability profile.

    Unknown names resolve to the default profile: no decay sensitivity and no
    jealousy, so characters nobody configured never drift on their own.
    """

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        cfg = config or {}
        self._default = self._build(CharacterProfile(name=""), cfg.get("defaults", {}))
        self._humans = {str(name) for name in cfg.get("humans", [])}
        excluded = {str(name) for name in cfg.get("excluded", [])}
        self._profiles: dict[str, CharacterProfile] = {}
        for name, overrides in (cfg.get("characters") or {}).items():
            profile = self._build(replace(self._default, name=str(name)), overrides or {})
            if profile.name in excluded:
                profile = replace(profile, excluded=True)
            self._profiles[profile.name] = profile
        for name in excluded - self._profiles.keys():
            self._profiles[name] = replace(self._default, name=name, excluded=True)

    @classmethod
    def from_yaml(cls, path: Path) -> CharacterRegistry:
        """Build registry from YAML file path."""
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            raise ValueError("characters.yaml must be a mapping.")
        return cls(config=data)

    @staticmethod
    def _build(base: CharacterProfile, overrides: dict[str, Any]) -> CharacterProfile:
        values: dict[str, Any] = {}
        for key, cast in _PROFILE_FIELDS.items():
            if key in overrides and overrides[key] is not None:
                values[key] = cast(overrides[key])
        if "tags" in overrides:
            values["tags"] = tuple(str(tag) for tag in overrides["tags"] or ())
        return replace(base, **values)

    def get(self, name: str) -> CharacterProfile:
        profile = self._profiles.get(name)
        if profile is None:
            profile = replace(self._default, name=name)
        if name in self._humans and not profile.is_human:
            profile = replace(profile, is_human=True)
        return profile

    def humans(self) -> list[str]:
        return sorted(self._humans)

    def is_human(self, name: str) -> bool:
        return name in self._humans

    def is_excluded(self, name: str) -> bool:
        return self.get(name).excluded
