"""Configuration utilities for the machinebridge CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any

import click

from machinebridge.core.config import BridgeConfig, ConfigError

API_KEY_ENV = "MACHINEBRIDGE_API_KEY"


def get_config_dir() -> Path:
    """Get the configuration directory for machinebridge.

    Returns:
        Path to ~/.machinebridge or equivalent.
    """
    return Path.home() / ".machinebridge"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def resolve_config(overrides: dict[str, Any] | None = None) -> BridgeConfig:
    """Build the bridge configuration.

    Values come from the config file, then the MACHINEBRIDGE_API_KEY
    environment variable, then command-line overrides.

    Raises:
        ConfigError: If the API key is missing or a value is invalid.
    """
    data = load_config()
    env_key = os.environ.get(API_KEY_ENV)
    if env_key:
        data["api_key"] = env_key
    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value
    return BridgeConfig.from_dict(data)


def require_config(overrides: dict[str, Any] | None = None) -> BridgeConfig:
    """Build the bridge configuration or exit with an error."""
    try:
        return resolve_config(overrides)
    except ConfigError as e:
        click.echo(f"Error: {e}. Run 'machinebridge configure' first.", err=True)
        sys.exit(1)
