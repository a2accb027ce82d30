"""Typed value models returned by the engine's repositories."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class Location(StrEnum):
    """Places a character can be. Anything but MAIN_FLOOR is a special location."""

    MAIN_FLOOR = "main_floor"
    REST_AREA = "rest_area"
    OPS_AREA = "ops_area"
    MEETING = "meeting"
    STUDY_AREA = "study_area"
    OUTING = "outing"

    @property
    def is_special(self) -> bool:
        return self is not Location.MAIN_FLOOR

    @classmethod
    def parse(cls, value: str | Location | None) -> Location | None:
        """Normalize a stored or user supplied location tag."""
        if value is None or isinstance(value, Location):
            return value
        tag = value.strip().lower().replace("-", "_").replace(" ", "_")
        if not tag:
            return None
        return cls(tag)


class CharacterState(BaseModel):
    """Snapshot of one character's mutable state."""

    character_name: str
    mood: str = "neutral"
    energy: int = Field(default=100, ge=0, le=100)
    patience: int = Field(default=100, ge=0, le=100)
    location: Location | None = None
    last_spoke_at: datetime | None = None
    interactions_today: int = 0
    updated_at: datetime | None = None


class MemoryEntry(BaseModel):
    """A core (pinned) or working memory."""

    id: int
    character_name: str
    content: str
    memory_type: str = "general"
    importance: int = Field(ge=1, le=10)
    is_pinned: bool = False
    related_characters: list[str] = Field(default_factory=list)
    emotional_tags: list[str] = Field(default_factory=list)
    created_at: datetime
    expires_at: datetime | None = None


class Relationship(BaseModel):
    """Directed affinity from character_name toward target_name."""

    character_name: str
    target_name: str
    affinity: int = Field(default=0, ge=-100, le=100)
    seed_affinity: int = 0
    relationship_label: str | None = None
    bond_type: str | None = None
    bond_exclusive: bool = False
    interaction_count: int = 0
    last_interaction_at: datetime | None = None
    created_at: datetime | None = None
