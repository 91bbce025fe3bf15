"""Shared types for machine state synchronization.

This module provides:
- SyncError, CommandRejected, WaitFailed, WaitTimedOut, ReadFailed,
  MachineNotFound: Exception classes
- CommandOutcome: Result of issuing a command
- Idle, AwaitingTarget: Per-machine transition states
- StateObserver, RemoteMachineClient: Protocols for the collaborators
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol, Union

from machinebridge.core.types import DoorCommand, MachineState

if TYPE_CHECKING:
    from machinebridge.client.api import MachineSnapshot
    from machinebridge.core.types import StateView


class SyncError(Exception):
    """Base exception for synchronization errors.

    Attributes:
        machine_id: Machine the error relates to.
    """

    def __init__(self, machine_id: str, message: str) -> None:
        super().__init__(message)
        self.machine_id = machine_id


class CommandRejected(SyncError):
    """Remote start/stop call failed; no transition was armed."""


class WaitFailed(SyncError):
    """Waiting for a transition to complete failed."""


class WaitTimedOut(WaitFailed):
    """Transition did not complete before the remote wait timed out."""


class ReadFailed(SyncError):
    """Machine state could not be read."""


class MachineNotFound(ReadFailed):
    """Remote returned no machine for a known id."""


class CommandOutcome(str, Enum):
    """Result of a command handed to a synchronizer."""

    ACCEPTED = "accepted"
    REDUNDANT = "redundant"  # a transition was already pending, ignored


@dataclass(frozen=True)
class Idle:
    """No transition in flight; reads reflect remote truth."""

    @property
    def pending(self) -> bool:
        return False


@dataclass(frozen=True)
class AwaitingTarget:
    """A command was issued and its terminal state is being awaited.

    Attributes:
        state: Terminal machine state being awaited.
        command: Command that armed the transition.
    """

    state: MachineState
    command: DoorCommand

    @property
    def pending(self) -> bool:
        return True


TransitionState = Union[Idle, AwaitingTarget]

IDLE = Idle()


class StateObserver(Protocol):
    """Receives freshly reconciled views for the host platform."""

    def push(self, machine_id: str, view: StateView) -> None:
        """Publish the current/target pair of a machine."""
        ...


class RemoteMachineClient(Protocol):
    """Remote operations the synchronizer relies on."""

    async def show(self, machine_id: str) -> MachineSnapshot:
        """Get the current snapshot of a machine."""
        ...

    async def start(self, machine_id: str) -> None:
        """Start a machine."""
        ...

    async def stop(self, machine_id: str) -> None:
        """Stop a machine."""
        ...

    async def wait_for(self, machine_id: str, state: MachineState) -> MachineSnapshot:
        """Wait until a machine reaches a state."""
        ...
