"""Configuration loading and runtime path bootstrapping."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

DATABASE_URL_ENV = "CSE_DATABASE_URL"


class ConfigurationError(ValueError):
    """Configuration is missing or malformed."""


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML from file, returning empty mapping when missing."""
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file must contain a mapping: {path}")
    return data


def merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge dictionaries."""
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def ensure_runtime_dirs(root: Path, config: dict[str, Any]) -> dict[str, Path]:
    """Ensure database and log directories exist and return resolved paths."""
    paths_cfg = config.get("paths", {})
    db_path = (root / paths_cfg.get("db_path", "var/cse.db")).resolve()
    audit_log_path = (root / paths_cfg.get("audit_log_path", "logs/turns.jsonl")).resolve()

    db_path.parent.mkdir(parents=True, exist_ok=True)
    audit_log_path.parent.mkdir(parents=True, exist_ok=True)

    return {"db_path": db_path, "audit_log_path": audit_log_path}


def load_effective_config(root: Path, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Load and merge all runtime configuration files plus environment overrides."""
    config_dir = root / "config"
    default_cfg = load_yaml(config_dir / "default.yaml")
    models_cfg = load_yaml(config_dir / "models.yaml")
    characters_cfg = load_yaml(config_dir / "characters.yaml")

    merged = merge_dicts(default_cfg, {"models": models_cfg, "characters": characters_cfg})
    if overrides:
        merged = merge_dicts(merged, overrides)

    database_url = os.getenv(DATABASE_URL_ENV)
    if database_url:
        merged = merge_dicts(merged, {"database": {"url": database_url}})
    return merged
