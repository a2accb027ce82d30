"""Character registry and configuration tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from characters.registry import CharacterRegistry
from core.policy_runtime import DATABASE_URL_ENV, ConfigurationError, load_effective_config, load_yaml

REPO_ROOT = Path(__file__).resolve().parents[1]


def test_profiles_fall_back_to_defaults() -> None:
    registry = CharacterRegistry(
        {
            "defaults": {"decay_sensitivity": 0.2},
            "humans": ["Vale"],
            "excluded": ["Ace"],
            "characters": {"Kevin": {"decay_sensitivity": 1.5, "tags": ["chaotic"]}},
        }
    )

    assert registry.get("Kevin").decay_sensitivity == 1.5
    assert registry.get("Kevin").tags == ("chaotic",)
    assert registry.get("Stranger").decay_sensitivity == 0.2
    assert registry.get("Stranger").jealousy_intensity == 0.0
    assert registry.is_excluded("Ace") is True
    assert registry.is_human("Vale") is True
    assert registry.get("Vale").is_human is True
    assert registry.humans() == ["Vale"]


def test_shipped_character_config_loads() -> None:
    registry = CharacterRegistry.from_yaml(REPO_ROOT / "config" / "characters.yaml")
    assert registry.get("Ghost Dad").decay_immune is True
    assert registry.get("PRNT-Ω").cooldown_multiplier == 2.0
    assert registry.is_excluded("Ace") is True


def test_effective_config_merges_files_and_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(DATABASE_URL_ENV, "sqlite+pysqlite:///:memory:")
    config = load_effective_config(REPO_ROOT, overrides={"turns": {"global_cooldown_seconds": 3}})

    assert config["database"]["url"] == "sqlite+pysqlite:///:memory:"
    assert config["turns"]["global_cooldown_seconds"] == 3
    assert config["turns"]["entity_cooldown_seconds"] == 60
    assert config["models"]["llm"]["backends"]["mock"]["type"] == "mock"
    assert "Kevin" in config["characters"]["characters"]


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_yaml(path)
    assert load_yaml(tmp_path / "missing.yaml") == {}
