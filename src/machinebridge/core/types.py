"""Shared types for machinebridge.

This module defines the enums used by the client, the synchronizer and the
host platform adapter.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class MachineState(str, Enum):
    """Lifecycle state of a machine, as reported by the remote service."""

    OFF = "off"
    STARTING = "starting"  # changing to serviceready or ready
    STOPPING = "stopping"  # changing to off
    RESTARTING = "restarting"  # stopping followed immediately by starting
    SERVICE_READY = "serviceready"  # services up, agent not available yet
    READY = "ready"
    UPGRADING = "upgrading"  # resizing, involves a shutdown and startup
    PROVISIONING = "provisioning"  # being created for the first time


class ObservedState(str, Enum):
    """Current view: is the machine running right now."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class TargetState(str, Enum):
    """Target view: what the machine is converging toward."""

    OPEN = "open"
    CLOSED = "closed"


_COMMAND_ALIASES = {
    "open": "open",
    "on": "open",
    "start": "open",
    "close": "close",
    "closed": "close",
    "off": "close",
    "stop": "close",
}


class DoorCommand(str, Enum):
    """Binary command issued by a consumer."""

    OPEN = "open"
    CLOSE = "close"

    @classmethod
    def parse(cls, value: object) -> DoorCommand:
        """Parse a consumer supplied value into a command.

        Accepts members of this enum, ``TargetState`` members, booleans
        (True means open) and case-insensitive strings such as ``"on"`` or
        ``"stop"``.

        Raises:
            ValueError: If the value is not recognised.
        """
        if isinstance(value, DoorCommand):
            return value
        if isinstance(value, TargetState):
            return cls.OPEN if value is TargetState.OPEN else cls.CLOSE
        if isinstance(value, bool):
            return cls.OPEN if value else cls.CLOSE
        if isinstance(value, str):
            alias = _COMMAND_ALIASES.get(value.strip().lower())
            if alias is not None:
                return cls(alias)
        raise ValueError(f"Unrecognized door command: {value!r}")


@dataclass(frozen=True)
class StateView:
    """Current and target views of a machine, always pushed together."""

    current: ObservedState
    target: TargetState
