"""Sync module - Machine state synchronization engine.

This module provides:
- MachineSynchronizer: per-machine command handling, transition waiting
  and reconciliation
- ReconcileScheduler: periodic reconciliation of all machines
- Error and transition types
"""

from machinebridge.sync.scheduler import ReconcileScheduler
from machinebridge.sync.synchronizer import MachineSynchronizer
from machinebridge.sync.types import (
    IDLE,
    AwaitingTarget,
    CommandOutcome,
    CommandRejected,
    Idle,
    MachineNotFound,
    ReadFailed,
    RemoteMachineClient,
    StateObserver,
    SyncError,
    TransitionState,
    WaitFailed,
    WaitTimedOut,
)

__all__ = [
    # Engine
    "MachineSynchronizer",
    "ReconcileScheduler",
    # Transition states
    "AwaitingTarget",
    "IDLE",
    "Idle",
    "TransitionState",
    "CommandOutcome",
    # Protocols
    "RemoteMachineClient",
    "StateObserver",
    # Errors
    "CommandRejected",
    "MachineNotFound",
    "ReadFailed",
    "SyncError",
    "WaitFailed",
    "WaitTimedOut",
]
