"""Shared fixtures for machinebridge tests."""

from __future__ import annotations

import asyncio

import pytest

from machinebridge.client.api import MachineSnapshot, NotFoundError
from machinebridge.core.types import MachineState, StateView


class FakeMachineClient:
    """In-memory remote client with controllable waits.

    ``wait_for`` blocks until ``release()`` is called, so tests can inspect
    the synchronizer while a transition is in flight without sleeping.
    """

    def __init__(self, states: dict[str, MachineState] | None = None) -> None:
        self.states: dict[str, MachineState] = dict(states or {})
        self.calls: list[tuple[str, str]] = []
        self.command_error: Exception | None = None
        self.show_error: Exception | None = None
        self.wait_error: Exception | None = None
        self.state_after_start = MachineState.STARTING
        self.state_after_stop = MachineState.STOPPING
        self.healthy = True
        self._gate = asyncio.Event()

    async def __aenter__(self) -> FakeMachineClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        pass

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    def release(self) -> None:
        """Let pending wait_for calls complete."""
        self._gate.set()

    async def health_check(self) -> bool:
        self.calls.append(("health_check", ""))
        return self.healthy

    async def list_machines(self) -> list[MachineSnapshot]:
        self.calls.append(("list", ""))
        return [
            MachineSnapshot(id=machine_id, name=f"name-{machine_id}", state=state, os="Ubuntu 20.04")
            for machine_id, state in self.states.items()
        ]

    async def show(self, machine_id: str) -> MachineSnapshot:
        self.calls.append(("show", machine_id))
        await asyncio.sleep(0)
        if self.show_error is not None:
            raise self.show_error
        if machine_id not in self.states:
            raise NotFoundError(f"Machine {machine_id} not found", 404)
        return MachineSnapshot(id=machine_id, name=machine_id, state=self.states[machine_id])

    async def start(self, machine_id: str) -> None:
        self.calls.append(("start", machine_id))
        await asyncio.sleep(0)
        if self.command_error is not None:
            raise self.command_error
        self.states[machine_id] = self.state_after_start

    async def stop(self, machine_id: str) -> None:
        self.calls.append(("stop", machine_id))
        await asyncio.sleep(0)
        if self.command_error is not None:
            raise self.command_error
        self.states[machine_id] = self.state_after_stop

    async def wait_for(self, machine_id: str, state: MachineState) -> MachineSnapshot:
        self.calls.append(("wait_for", machine_id))
        await self._gate.wait()
        if self.wait_error is not None:
            raise self.wait_error
        self.states[machine_id] = state
        return MachineSnapshot(id=machine_id, name=machine_id, state=state)


class RecordingObserver:
    """Observer that records every push."""

    def __init__(self) -> None:
        self.pushes: list[tuple[str, StateView]] = []

    def push(self, machine_id: str, view: StateView) -> None:
        self.pushes.append((machine_id, view))


@pytest.fixture
def fake_client() -> FakeMachineClient:
    """Remote client with one stopped and one running machine."""
    return FakeMachineClient({"ps-off": MachineState.OFF, "ps-ready": MachineState.READY})


@pytest.fixture
def observer() -> RecordingObserver:
    """Observer recording pushes."""
    return RecordingObserver()
