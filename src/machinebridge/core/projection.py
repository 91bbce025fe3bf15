"""Projection of remote machine states onto door-style views.

Mapping table:
    | MachineState                                   | Current  | Target |
    |------------------------------------------------|----------|--------|
    | off                                            | inactive | closed |
    | stopping                                       | inactive | closed |
    | starting, provisioning, restarting, upgrading  | active   | open   |
    | serviceready, ready                            | active   | open   |

A stopping machine is reported as closed on both views: the stop has been
committed and the host should not show it as running any more. Earlier
bridges reported every state except off as an open current door, which
showed a stopping machine as still running.
"""

from __future__ import annotations

from machinebridge.core.types import (
    DoorCommand,
    MachineState,
    ObservedState,
    StateView,
    TargetState,
)

_INACTIVE_STATES = frozenset({MachineState.OFF, MachineState.STOPPING})
_CLOSED_TARGETS = frozenset({MachineState.OFF, MachineState.STOPPING})


def _require_state(state: MachineState | None) -> MachineState:
    if state is None:
        raise ValueError("Cannot project a missing machine state")
    return MachineState(state)


def project_current(state: MachineState | None) -> ObservedState:
    """Project a machine state onto the current (active/inactive) view."""
    if _require_state(state) in _INACTIVE_STATES:
        return ObservedState.INACTIVE
    return ObservedState.ACTIVE


def project_target(state: MachineState | None) -> TargetState:
    """Project a machine state onto the target (open/closed) view."""
    if _require_state(state) in _CLOSED_TARGETS:
        return TargetState.CLOSED
    return TargetState.OPEN


def project(state: MachineState | None) -> StateView:
    """Project a machine state onto both views at once.

    Raises:
        ValueError: If state is None (machine missing or unreadable).
    """
    return StateView(current=project_current(state), target=project_target(state))


def expected_state_for(command: DoorCommand) -> MachineState:
    """Terminal machine state awaited after issuing a command."""
    if command is DoorCommand.OPEN:
        return MachineState.READY
    return MachineState.OFF
