"""CLI smoke tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import ManualClock
from typer.testing import CliRunner

from core.orchestrator import Orchestrator, RuntimeBundle
from core.policy_runtime import DATABASE_URL_ENV
from ui.cli import commands
from ui.cli.cli import app

runner = CliRunner()


@pytest.fixture()
def bundle(tmp_path: Path, clock: ManualClock, monkeypatch: pytest.MonkeyPatch) -> RuntimeBundle:
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
    built = Orchestrator(root=tmp_path, clock=clock).build()
    monkeypatch.setattr(commands, "_runtime", lambda root=None: built)
    return built


def test_state_set_and_show(bundle: RuntimeBundle) -> None:
    result = runner.invoke(app, ["state", "set", "Kevin", "--energy", "150", "--location", "study_area"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["state", "show", "Kevin"])
    payload = json.loads(result.output)
    assert payload["energy"] == 100
    assert payload["location"] == "study_area"


def test_state_set_rejects_unknown_location(bundle: RuntimeBundle) -> None:
    result = runner.invoke(app, ["state", "set", "Kevin", "--location", "basement"])
    assert result.exit_code == 2


def test_turn_take_reports_affinity_change(bundle: RuntimeBundle) -> None:
    result = runner.invoke(
        app,
        ["turn", "take", "Kevin", "-m", "the printer is jammed", "-a", "Vale=3", "--remember", "Printer day"],
    )
    assert result.exit_code == 0, result.output
    assert "Kevin:" in result.output
    assert "Kevin -> Vale: 0 -> 3" in result.output
    assert len(bundle.memory.list_memories("Kevin")) == 1

    result = runner.invoke(app, ["turn", "check", "Kevin"])
    assert json.loads(result.output)["allowed"] is False


def test_turn_take_rejects_malformed_affinity(bundle: RuntimeBundle) -> None:
    result = runner.invoke(app, ["turn", "take", "Kevin", "-a", "Vale"])
    assert result.exit_code == 2


def test_relationship_adjust_and_history(bundle: RuntimeBundle) -> None:
    result = runner.invoke(app, ["relationships", "adjust", "Kevin", "Vale", "9", "--reason", "lunch"])
    assert result.exit_code == 0, result.output
    assert "0 -> 5" in result.output

    history = json.loads(runner.invoke(app, ["relationships", "history", "Kevin", "Vale"]).output)
    assert history[0]["trigger"] == "lunch"


def test_memory_pin_unknown_id_fails(bundle: RuntimeBundle) -> None:
    result = runner.invoke(app, ["memory", "pin", "404"])
    assert result.exit_code == 1


def test_decay_dry_run_outputs_summary(bundle: RuntimeBundle) -> None:
    result = runner.invoke(app, ["decay", "run", "--dry-run"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"dry_run": True, "changes": []}


def test_wants_roundtrip(bundle: RuntimeBundle) -> None:
    result = runner.invoke(app, ["relationships", "wants", "add", "Kevin", "Vale to like my plant"])
    want = json.loads(result.output)
    assert runner.invoke(app, ["relationships", "wants", "fulfill", str(want["id"])]).exit_code == 0
    assert runner.invoke(app, ["relationships", "wants", "fulfill", str(want["id"])]).exit_code == 1
