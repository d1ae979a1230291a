"""
YAML settings loader for the order service.
Resolves the settings file location and reads it as a plain mapping.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import yaml


def get_config_path() -> Path:
    """Return path to base.yaml config file."""
    # Check environment variable first, then default to project config
    env_path = os.getenv("ORDERS_CONFIG_PATH")
    if env_path:
        return Path(env_path)
    # Default: relative to this module
    return Path(__file__).parent / "base.yaml"


def read_yaml(path: Path) -> Dict[str, Any]:
    """Read a YAML mapping; a missing file reads as empty."""
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return {}
    return data
