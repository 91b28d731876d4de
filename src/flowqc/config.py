"""Configuration helpers for the QC engine."""

from __future__ import annotations

import yaml
from pathlib import Path
from typing import Any, Dict

from .exceptions import ConfigError

DEFAULT_CONFIG_PATH = Path("config/flowqc.yaml")


def load_config(config_path: Path | None = None) -> Dict[str, Any]:
    """Load QC configuration from YAML and return as a dictionary."""
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration root in {path} must be a mapping, got {type(data).__name__}")
    return data

