"""inventory_restore.config

YAML-based settings for the restore pipeline.

Responsibilities:
  - Load and validate config/restore.yml (every key optional)
  - Provide connection retry, operation retry, and status-scheme settings

Usage:
    from pathlib import Path
    from inventory_restore.config import load_settings

    settings = load_settings(Path("config/restore.yml"))
    settings.connect_attempts  # 5
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from inventory_restore.status import STATUS_SCHEMES

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

POSITIVE_INT_KEYS = frozenset({"connect_attempts", "op_max_retries", "batch_size"})
NON_NEGATIVE_FLOAT_KEYS = frozenset({"connect_backoff_seconds", "op_backoff_seconds"})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SettingsValidationError(ValueError):
    """Raised when a settings file fails validation."""


# ---------------------------------------------------------------------------
# RestoreSettings dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RestoreSettings:
    connect_attempts: int = 5
    connect_backoff_seconds: float = 2.0
    op_max_retries: int = 3
    op_backoff_seconds: float = 1.0
    status_scheme: str = "fine"
    default_unit: str = "pcs"
    batch_size: int = 500


DEFAULT_SETTINGS = RestoreSettings()


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_settings(yaml_path: Path | None) -> RestoreSettings:
    """Load, validate, and return RestoreSettings.

    A None path returns the defaults.  An empty file is treated as {}.

    Raises:
        SettingsValidationError: If any key is unknown or invalid.
        FileNotFoundError: If the YAML file does not exist.
    """
    if yaml_path is None:
        return DEFAULT_SETTINGS
    raw = yaml_path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise SettingsValidationError(
            f"{yaml_path}: top level must be a mapping, got {type(data).__name__}"
        )
    validate_settings(data)
    return RestoreSettings(**data)


def validate_settings(data: dict[str, Any]) -> None:
    """Raise SettingsValidationError if data does not match the settings schema."""
    known = {f.name for f in fields(RestoreSettings)}
    unknown = set(data) - known
    if unknown:
        raise SettingsValidationError(f"unknown settings keys: {sorted(unknown)}")

    for key in POSITIVE_INT_KEYS & set(data):
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise SettingsValidationError(f"{key} must be a positive integer, got {value!r}")

    for key in NON_NEGATIVE_FLOAT_KEYS & set(data):
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise SettingsValidationError(f"{key} must be a non-negative number, got {value!r}")

    if "status_scheme" in data and data["status_scheme"] not in STATUS_SCHEMES:
        raise SettingsValidationError(
            f"status_scheme must be one of {sorted(STATUS_SCHEMES)}, got {data['status_scheme']!r}"
        )

    if "default_unit" in data:
        unit = data["default_unit"]
        if not isinstance(unit, str) or not unit.strip():
            raise SettingsValidationError("default_unit must be a non-empty string")
