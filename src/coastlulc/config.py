#!/usr/bin/env python3
"""coastlulc.config

Shared configuration utilities for the coastlulc CLI subsystems.

This module provides common helpers used across coastlulc.features and
coastlulc.classify. Centralizing these avoids duplication and ensures
consistent behavior.

Design notes:
- YAML loading is strict: files must exist and be valid mappings.
- CLI flags override study YAML values; the YAML only supplies defaults.
- All functions are pure (no side effects on import).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml


# -----------------------------------------------------------------------------
# YAML loading
# -----------------------------------------------------------------------------

def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return as dict.

    Raises SystemExit on missing file or invalid format (non-mapping).
    Config errors should fail fast.
    """
    if not path.exists():
        raise SystemExit(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise SystemExit(f"Expected YAML mapping at {path}")
    return data


def load_optional_yaml(path: Optional[Path]) -> Dict[str, Any]:
    """Like load_yaml, but a missing file yields an empty mapping.

    Used for override files (sensors.yaml, classes.yaml) where the built-in
    tables are a complete fallback.
    """
    if path is None or not path.exists():
        return {}
    return load_yaml(path)


def load_study(path: Path) -> Dict[str, Any]:
    """Return the `study:` section of the study YAML.

    The default path may be absent (every setting can come from CLI flags);
    an explicitly given path must exist.
    """
    if path == DEFAULT_STUDY_YAML and not path.exists():
        return {}
    return get_section(load_yaml(path), "study")


def get_section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Return a mapping sub-section, or {} when absent.

    Raises SystemExit if the key exists but is not a mapping.
    """
    section = data.get(key)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise SystemExit(f"Config section '{key}' must be a mapping")
    return section


# -----------------------------------------------------------------------------
# Value helpers
# -----------------------------------------------------------------------------
# Study YAML values are loosely typed; these coerce them at the CLI boundary.

def pick(cli_value: Any, study: Dict[str, Any], key: str, default: Any = None) -> Any:
    """Resolve a setting: CLI flag first, then study YAML, then default."""
    if cli_value is not None:
        return cli_value
    value = study.get(key)
    return default if value is None else value


def as_path(value: Any) -> Optional[Path]:
    """Coerce a config value into a Path (None stays None)."""
    if value is None or value == "":
        return None
    return Path(str(value))


def as_band_list(value: Any, default: Sequence[str]) -> List[str]:
    """Coerce a YAML list (or comma-separated string) into band names."""
    if value is None:
        return list(default)
    if isinstance(value, str):
        return [b.strip() for b in value.split(",") if b.strip()]
    if isinstance(value, (list, tuple)):
        return [str(b) for b in value]
    raise SystemExit(f"Expected a list of band names, got: {value!r}")


# -----------------------------------------------------------------------------
# Default paths
# -----------------------------------------------------------------------------
# Centralized so all CLIs use the same defaults.

DEFAULT_STUDY_YAML = Path("config/study.yaml")
DEFAULT_SENSORS_YAML = Path("config/sensors.yaml")
DEFAULT_CLASSES_YAML = Path("config/classes.yaml")

DEFAULT_FEATURES_DIR = Path("data/processed/features")
DEFAULT_TABLES_DIR = Path("data/processed/tables")
DEFAULT_CLASSIFIED_DIR = Path("data/processed/classified")
