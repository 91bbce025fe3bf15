"""Core module - Shared types, state projection and configuration."""

from machinebridge.core.config import (
    DEFAULT_API_URL,
    DEFAULT_POLL_INTERVAL,
    BridgeConfig,
    ConfigError,
)
from machinebridge.core.projection import (
    expected_state_for,
    project,
    project_current,
    project_target,
)
from machinebridge.core.types import (
    DoorCommand,
    MachineState,
    ObservedState,
    StateView,
    TargetState,
)

__all__ = [
    # Config
    "BridgeConfig",
    "ConfigError",
    "DEFAULT_API_URL",
    "DEFAULT_POLL_INTERVAL",
    # Projection
    "expected_state_for",
    "project",
    "project_current",
    "project_target",
    # Types
    "DoorCommand",
    "MachineState",
    "ObservedState",
    "StateView",
    "TargetState",
]
