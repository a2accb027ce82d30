"""SQLAlchemy schemas for character state, memory, and relationship tables."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return UTC datetime for default timestamps."""
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """Stores naive UTC and always hands back aware UTC datetimes.

    SQLite drops tzinfo on write, so comparisons only stay correct when every
    stored value is normalized to UTC first.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        return ensure_utc(value).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        return ensure_utc(value)


class Base(DeclarativeBase):
    """Declarative base."""


class CharacterStateRecord(Base):
    """One row per named character."""

    __tablename__ = "character_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    character_name: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    mood: Mapped[str] = mapped_column(String(64), default="neutral")
    energy: Mapped[int] = mapped_column(Integer, default=100)
    patience: Mapped[int] = mapped_column(Integer, default=100)
    location: Mapped[str | None] = mapped_column(String(32), nullable=True)
    last_spoke_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    interactions_today: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, index=True)


class ActionRecord(Base):
    """Committed character actions, newest rows drive turn cooldowns."""

    __tablename__ = "character_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    character_name: Mapped[str] = mapped_column(String(128), index=True)
    location: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, index=True)


class MemoryRecord(Base):
    """Per-character memory table (core = pinned, working = expiring)."""

    __tablename__ = "character_memory"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    character_name: Mapped[str] = mapped_column(String(128), index=True)
    memory_type: Mapped[str] = mapped_column(String(64), default="general", index=True)
    content: Mapped[str] = mapped_column(Text)
    importance: Mapped[int] = mapped_column(Integer, default=5, index=True)
    is_pinned: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    related_characters: Mapped[list[str]] = mapped_column(JSON, default=list)
    emotional_tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, index=True)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)


class RelationshipRecord(Base):
    """Directed affinity from one character toward a target."""

    __tablename__ = "character_relationships"
    __table_args__ = (UniqueConstraint("character_name", "target_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    character_name: Mapped[str] = mapped_column(String(128), index=True)
    target_name: Mapped[str] = mapped_column(String(128), index=True)
    affinity: Mapped[int] = mapped_column(Integer, default=0)
    seed_affinity: Mapped[int] = mapped_column(Integer, default=0)
    relationship_label: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bond_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bond_exclusive: Mapped[bool] = mapped_column(Boolean, default=False)
    interaction_count: Mapped[int] = mapped_column(Integer, default=0)
    last_interaction_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)


class RelationshipHistoryRecord(Base):
    """Append-only affinity change log."""

    __tablename__ = "relationship_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    character_name: Mapped[str] = mapped_column(String(128), index=True)
    target_name: Mapped[str] = mapped_column(String(128), index=True)
    old_affinity: Mapped[int] = mapped_column(Integer)
    new_affinity: Mapped[int] = mapped_column(Integer)
    old_label: Mapped[str | None] = mapped_column(String(64), nullable=True)
    new_label: Mapped[str | None] = mapped_column(String(64), nullable=True)
    trigger: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)


class AffinityLossLogRecord(Base):
    """Decay changes applied per run; sums per run_date enforce the daily cap."""

    __tablename__ = "affinity_loss_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    character_name: Mapped[str] = mapped_column(String(128), index=True)
    target_name: Mapped[str] = mapped_column(String(128))
    run_date: Mapped[date] = mapped_column(Date, index=True)
    dominant_system: Mapped[str] = mapped_column(String(32))
    breakdown: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    raw_delta: Mapped[int] = mapped_column(Integer)
    applied_delta: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)


class WantRecord(Base):
    """Outstanding wants a character holds toward others."""

    __tablename__ = "character_wants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    character_name: Mapped[str] = mapped_column(String(128), index=True)
    want_text: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    fulfilled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class OutboxRecord(Base):
    """Outbound notifications awaiting at-least-once delivery."""

    __tablename__ = "notification_outbox"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    idempotency_key: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    event_type: Mapped[str] = mapped_column(String(64), index=True)
    character_name: Mapped[str] = mapped_column(String(128))
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str] = mapped_column(Text, default="")
