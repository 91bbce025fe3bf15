"""Client module - Remote machine API access."""

from machinebridge.client.api import (
    APIError,
    AuthenticationError,
    MachineClient,
    MachineSnapshot,
    NotFoundError,
    WaitTimeoutError,
)

__all__ = [
    "APIError",
    "AuthenticationError",
    "MachineClient",
    "MachineSnapshot",
    "NotFoundError",
    "WaitTimeoutError",
]
