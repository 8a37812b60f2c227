"""Project-level configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from psvg.equations.evaluator import DEFAULT_MAX_DEPTH

CONFIG_FILENAME = "psvg.yaml"

DEFAULT_CONFIG = {
    "max_depth": DEFAULT_MAX_DEPTH,
    "notify_interval_secs": 50.0,
    "xml_declaration": {"version": "1.0", "encoding": "UTF-8"},
    "preview_host": "127.0.0.1",
    "logging_enabled": True,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}


def _flatten_logging_block(user_config: dict[str, Any]) -> dict[str, Any]:
    """Flatten a nested ``logging:`` block into ``logging_*`` keys.

    Supports::

        logging:
          enabled: true
          fsync: false
          tail_bytes: 1048576
    """
    block = user_config.pop("logging", None)
    if not isinstance(block, dict):
        return user_config
    for key, value in block.items():
        user_config[f"logging_{key}"] = value
    return user_config


def load_project_config(project_dir: Path) -> dict[str, Any]:
    """Load configuration from ``psvg.yaml`` in *project_dir*, with defaults.

    Args:
        project_dir: Directory holding the description files.

    Returns:
        Merged configuration dict.

    Raises:
        ValueError: If the file is not a YAML mapping or a value has the
            wrong type.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = Path(project_dir) / CONFIG_FILENAME
    if config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"{config_path} must contain a mapping")
        config.update(_flatten_logging_block(user_config))

    try:
        config["max_depth"] = int(config["max_depth"])
        config["notify_interval_secs"] = float(config["notify_interval_secs"])
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid value in {config_path}: {exc}") from exc
    if config["max_depth"] < 1:
        raise ValueError(f"max_depth must be at least 1, got {config['max_depth']}")
    if not isinstance(config["xml_declaration"], dict):
        raise ValueError("xml_declaration must be a mapping of attribute names to values")
    return config


def project_dir_for(path: Path) -> Path:
    """Return the directory whose config and logs apply to *path*."""
    path = Path(path)
    return path if path.is_dir() else path.parent
