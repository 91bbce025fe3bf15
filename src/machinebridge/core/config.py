"""Bridge configuration.

This module defines the configuration shared by the remote client, the
synchronizers and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

DEFAULT_API_URL = "https://api.paperspace.io"

# Most of the time state changes are awaited explicitly, so the
# reconciliation tick does not need to run often.
DEFAULT_POLL_INTERVAL = 30.0


class ConfigError(Exception):
    """Configuration is missing or invalid."""


@dataclass
class BridgeConfig:
    """Configuration for bridging remote machines to the host platform.

    Attributes:
        api_key: API key for the remote machine service.
        api_url: Base URL of the remote API.
        timeout: Request timeout in seconds.
        poll_interval: Seconds between reconciliation ticks.
        wait_poll_interval: Seconds between state polls while waiting
            for a transition to complete.
        wait_timeout: Seconds before a transition wait gives up.
        name: Display name of the platform.
    """

    api_key: str
    api_url: str = DEFAULT_API_URL
    timeout: float = 30.0
    poll_interval: float = DEFAULT_POLL_INTERVAL
    wait_poll_interval: float = 5.0
    wait_timeout: float = 900.0
    name: str = "MachineBridge"

    def __post_init__(self) -> None:
        """Validate settings and normalize the API URL."""
        if not self.api_key or not self.api_key.strip():
            raise ConfigError("apiKey is required")
        self.api_key = self.api_key.strip()
        self.api_url = self.api_url.rstrip("/")
        for name in ("timeout", "poll_interval", "wait_poll_interval", "wait_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BridgeConfig:
        """Create from a configuration dictionary.

        Unknown keys are ignored. Both ``api_key`` and the host style
        ``apiKey`` are accepted.

        Raises:
            ConfigError: If the API key is missing or a value is invalid.
        """
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known and v is not None}
        if "api_key" not in values and data.get("apiKey"):
            values["api_key"] = data["apiKey"]
        if "api_key" not in values:
            raise ConfigError("apiKey is required")
        for name in ("timeout", "poll_interval", "wait_poll_interval", "wait_timeout"):
            if name in values:
                try:
                    values[name] = float(values[name])
                except (TypeError, ValueError) as e:
                    raise ConfigError(f"{name} must be a number") from e
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}
