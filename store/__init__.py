"""Persistent store adapter: schemas, row primitives, and typed models."""

from store.sql_store import SQLStore
from store.types import CharacterState, Location, MemoryEntry, Relationship

__all__ = [
    "SQLStore",
    "CharacterState",
    "Location",
    "MemoryEntry",
    "Relationship",
]
