"""Store primitive tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from store.schemas import CharacterStateRecord
from store.sql_store import SQLStore
from store.types import Location


def test_upsert_creates_on_patch_miss_then_patches(store: SQLStore) -> None:
    created = store.upsert(CharacterStateRecord, key={"character_name": "Kevin"}, fields={"mood": "giddy"})
    assert created is True

    created = store.upsert(CharacterStateRecord, key={"character_name": "Kevin"}, fields={"energy": 42})
    assert created is False

    rows = store.read(CharacterStateRecord, CharacterStateRecord.character_name == "Kevin")
    assert len(rows) == 1
    assert rows[0]["mood"] == "giddy"
    assert rows[0]["energy"] == 42
    assert rows[0]["patience"] == 100


def test_patch_reports_affected_rows(store: SQLStore) -> None:
    assert store.patch(CharacterStateRecord, CharacterStateRecord.character_name == "Nobody", mood="x") == 0
    store.insert(CharacterStateRecord, character_name="Neiv")
    assert store.patch(CharacterStateRecord, CharacterStateRecord.character_name == "Neiv", mood="calm") == 1


def test_claim_is_conditional(store: SQLStore) -> None:
    store.insert(CharacterStateRecord, character_name="Neiv", energy=10)
    won = store.claim(
        CharacterStateRecord,
        CharacterStateRecord.character_name == "Neiv",
        CharacterStateRecord.energy > 50,
        mood="won",
    )
    assert won is False
    assert store.first(CharacterStateRecord, CharacterStateRecord.character_name == "Neiv")["mood"] == "neutral"


def test_timestamps_come_back_as_utc(store: SQLStore) -> None:
    plus_two = timezone(timedelta(hours=2))
    moment = datetime(2026, 3, 2, 11, 30, tzinfo=plus_two)
    store.insert(CharacterStateRecord, character_name="Vex", last_spoke_at=moment)

    row = store.first(CharacterStateRecord, CharacterStateRecord.character_name == "Vex")
    assert row["last_spoke_at"].tzinfo is not None
    assert row["last_spoke_at"] == datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


def test_location_parse_normalizes_tags() -> None:
    assert Location.parse("Rest-Area") is Location.REST_AREA
    assert Location.parse("study area") is Location.STUDY_AREA
    assert Location.parse(None) is None
    assert Location.MAIN_FLOOR.is_special is False
    assert Location.OUTING.is_special is True
