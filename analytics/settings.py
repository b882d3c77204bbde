"""Settings loading and validation utilities."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .sources import DEFAULT_TABLES

DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parent.parent / "config" / "engine.yaml"

DEFAULT_SETTINGS: Dict = {
    "data_dir": "data",
    "log_level": "INFO",
    "currency_label": "IDR",
    "tables": dict(DEFAULT_TABLES),
}

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class SettingsError(ValueError):
    """Raised when a settings file fails validation."""


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override into base; lists are replaced, not merged."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def load_yaml_file(path: Path) -> dict:
    """Load a YAML file and return an object (empty dict for empty files)."""
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def validate_settings(settings: Dict) -> List[str]:
    """Validate settings structure; returns a list of error messages."""
    errors: List[str] = []

    if not isinstance(settings.get("data_dir"), str) or not settings.get("data_dir"):
        errors.append("data_dir must be a non-empty string")

    level = str(settings.get("log_level", "")).upper()
    if level not in _LOG_LEVELS:
        errors.append(f"log_level invalid: {settings.get('log_level')}")

    tables = settings.get("tables")
    if not isinstance(tables, dict):
        errors.append("tables must be a mapping")
    else:
        for kind in DEFAULT_TABLES:
            name = tables.get(kind)
            if not isinstance(name, str) or not name.strip():
                errors.append(f"tables.{kind} must name a table")
        unknown = sorted(set(tables) - set(DEFAULT_TABLES))
        for kind in unknown:
            errors.append(f"tables.{kind} is not a known table kind")

    return errors


def load_settings(path: Optional[Path] = None) -> dict:
    """
    Load settings from YAML merged over the built-in defaults.

    A missing default file yields the defaults; a missing explicit path
    raises FileNotFoundError.

    Raises:
        SettingsError: if the merged settings are invalid
    """
    settings = copy.deepcopy(DEFAULT_SETTINGS)
    if path is None:
        path = DEFAULT_SETTINGS_PATH
        if not path.exists():
            return settings
    settings = deep_merge(settings, load_yaml_file(Path(path)))

    errors = validate_settings(settings)
    if errors:
        raise SettingsError("; ".join(errors))
    return settings


def configure_logging(settings: Dict) -> None:
    """Configure root logging from the `log_level` setting."""
    logging.basicConfig(
        level=getattr(logging, str(settings.get("log_level", "INFO")).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def resolve_data_dir(settings: Dict, base_dir: Optional[Path] = None) -> Path:
    """Data directory, relative paths resolved against `base_dir` (project root)."""
    data_dir = Path(settings["data_dir"])
    if data_dir.is_absolute():
        return data_dir
    return (base_dir or DEFAULT_SETTINGS_PATH.parent.parent) / data_dir
