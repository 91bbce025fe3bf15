"""Tests for MachineSynchronizer."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import pytest

from machinebridge.client.api import APIError, MachineSnapshot, WaitTimeoutError
from machinebridge.core.types import (
    DoorCommand,
    MachineState,
    ObservedState,
    StateView,
    TargetState,
)
from machinebridge.sync.synchronizer import MachineSynchronizer
from machinebridge.sync.types import (
    IDLE,
    AwaitingTarget,
    CommandOutcome,
    CommandRejected,
    MachineNotFound,
    ReadFailed,
    WaitFailed,
    WaitTimedOut,
)

if TYPE_CHECKING:
    from tests.conftest import FakeMachineClient, RecordingObserver

RUNNING = StateView(ObservedState.ACTIVE, TargetState.OPEN)
STOPPED = StateView(ObservedState.INACTIVE, TargetState.CLOSED)


async def settle() -> None:
    """Let background tasks run until they block."""
    for _ in range(5):
        await asyncio.sleep(0)


class TestCommandHandler:
    """Tests for request/request_open/request_close."""

    @pytest.mark.asyncio
    async def test_open_arms_transition(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """Should start the machine and await the ready state."""
        sync = MachineSynchronizer("ps-off", fake_client, observer)

        outcome = await sync.request_open()
        await settle()

        assert outcome is CommandOutcome.ACCEPTED
        assert sync.pending
        assert sync.transition == AwaitingTarget(MachineState.READY, DoorCommand.OPEN)
        assert fake_client.count("start") == 1
        assert fake_client.count("wait_for") == 1
        assert observer.pushes == []

        fake_client.release()
        await sync.wait_idle()

    @pytest.mark.asyncio
    async def test_close_awaits_off(self, fake_client: FakeMachineClient) -> None:
        """Should stop the machine and await the off state."""
        sync = MachineSynchronizer("ps-ready", fake_client)

        await sync.request_close()

        assert sync.transition == AwaitingTarget(MachineState.OFF, DoorCommand.CLOSE)
        assert fake_client.count("stop") == 1

        fake_client.release()
        await sync.wait_idle()

    @pytest.mark.asyncio
    async def test_request_parses_values(self, fake_client: FakeMachineClient) -> None:
        """Should accept host style values such as "on"."""
        sync = MachineSynchronizer("ps-off", fake_client)

        await sync.request("on")

        assert fake_client.count("start") == 1
        fake_client.release()
        await sync.wait_idle()

    @pytest.mark.asyncio
    async def test_unrecognized_command(self, fake_client: FakeMachineClient) -> None:
        """Should raise ValueError without contacting the remote."""
        sync = MachineSynchronizer("ps-off", fake_client)

        with pytest.raises(ValueError):
            await sync.request("sideways")

        assert fake_client.calls == []
        assert sync.transition is IDLE

    @pytest.mark.asyncio
    async def test_rejected_command(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """Should raise CommandRejected and leave everything untouched."""
        fake_client.command_error = APIError("quota exceeded", 400)
        sync = MachineSynchronizer("ps-off", fake_client, observer)

        with pytest.raises(CommandRejected, match="quota exceeded") as exc_info:
            await sync.request_open()

        assert exc_info.value.machine_id == "ps-off"
        assert isinstance(exc_info.value.__cause__, APIError)
        assert not sync.pending
        assert fake_client.count("wait_for") == 0
        assert observer.pushes == []
        assert sync.last_view is None

    @pytest.mark.asyncio
    async def test_redundant_command_is_ignored(
        self,
        fake_client: FakeMachineClient,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Should log a warning and not start a second waiter."""
        sync = MachineSynchronizer("ps-off", fake_client)
        await sync.request_open()
        await settle()

        with caplog.at_level(logging.WARNING, logger="machinebridge"):
            outcome = await sync.request_close()

        assert outcome is CommandOutcome.REDUNDANT
        assert "still waiting for ready" in caplog.text
        assert fake_client.count("stop") == 0
        assert fake_client.count("wait_for") == 1
        assert sync.transition == AwaitingTarget(MachineState.READY, DoorCommand.OPEN)

        fake_client.release()
        await sync.wait_idle()

    @pytest.mark.asyncio
    async def test_command_in_flight_counts_as_pending(
        self, fake_client: FakeMachineClient
    ) -> None:
        """A second command while the first remote call is in flight is redundant."""
        sync = MachineSynchronizer("ps-off", fake_client)

        first = asyncio.create_task(sync.request_open())
        await asyncio.sleep(0)  # first command is now inside client.start
        second = await sync.request_open()

        assert second is CommandOutcome.REDUNDANT
        assert await first is CommandOutcome.ACCEPTED
        assert fake_client.count("start") == 1

        fake_client.release()
        await sync.wait_idle()

    @pytest.mark.asyncio
    async def test_cancelled_command_releases_transition(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """Cancelling a command mid-call should not leave the machine pending."""
        start_called = asyncio.Event()

        async def blocked_start(machine_id: str) -> None:
            start_called.set()
            await asyncio.Event().wait()

        fake_client.start = blocked_start  # type: ignore[method-assign]
        sync = MachineSynchronizer("ps-off", fake_client, observer)

        task = asyncio.create_task(sync.request_open())
        await start_called.wait()
        assert sync.pending
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert sync.transition is IDLE
        assert fake_client.count("wait_for") == 0
        assert await sync.reconcile() == STOPPED
        assert observer.pushes == [("ps-off", STOPPED)]


class TestTransitionWaiter:
    """Tests for the background wait after a command."""

    @pytest.mark.asyncio
    async def test_start_scenario(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """Off machine opened: pending goes true then false, pushes running."""
        sync = MachineSynchronizer("ps-off", fake_client, observer)

        await sync.request_open()
        await settle()
        assert sync.pending

        fake_client.release()
        failure = await sync.wait_idle()

        assert failure is None
        assert not sync.pending
        assert observer.pushes == [("ps-off", RUNNING)]
        assert sync.last_view == RUNNING

    @pytest.mark.asyncio
    async def test_stop_timeout_scenario(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """Wait times out while stopping: guard released, stopping state pushed."""
        fake_client.wait_error = WaitTimeoutError("still stopping")
        sync = MachineSynchronizer("ps-ready", fake_client, observer)

        await sync.request_close()
        fake_client.release()
        failure = await sync.wait_idle()

        assert isinstance(failure, WaitTimedOut)
        assert fake_client.states["ps-ready"] is MachineState.STOPPING
        assert not sync.pending
        assert observer.pushes == [("ps-ready", STOPPED)]

    @pytest.mark.asyncio
    async def test_wait_failure(
        self,
        fake_client: FakeMachineClient,
        observer: RecordingObserver,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Network error while waiting: logged, guard released, reconciled."""
        fake_client.wait_error = APIError("connection reset")
        sync = MachineSynchronizer("ps-off", fake_client, observer)

        await sync.request_open()
        fake_client.release()
        with caplog.at_level(logging.WARNING, logger="machinebridge"):
            failure = await sync.wait_idle()

        assert isinstance(failure, WaitFailed)
        assert not isinstance(failure, WaitTimedOut)
        assert "connection reset" in caplog.text
        assert not sync.pending
        # starting is already reported as running
        assert observer.pushes == [("ps-off", RUNNING)]

    @pytest.mark.asyncio
    async def test_wait_and_read_failure(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """Guard is released even when the follow-up read fails too."""
        fake_client.wait_error = APIError("down")
        sync = MachineSynchronizer("ps-off", fake_client, observer)

        await sync.request_open()
        fake_client.show_error = APIError("down")
        fake_client.release()
        await sync.wait_idle()

        assert not sync.pending
        assert observer.pushes == []

    @pytest.mark.asyncio
    async def test_exactly_one_reconciliation(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """Resolution should trigger exactly one read and one push."""
        sync = MachineSynchronizer("ps-off", fake_client, observer)

        await sync.request_open()
        fake_client.release()
        await sync.wait_idle()

        assert fake_client.count("show") == 1
        assert len(observer.pushes) == 1

    @pytest.mark.asyncio
    async def test_observer_error_does_not_escape(
        self, fake_client: FakeMachineClient
    ) -> None:
        """An observer failure after a transition is logged, not raised."""

        class BrokenObserver:
            def push(self, machine_id: str, view: StateView) -> None:
                raise RuntimeError("host went away")

        sync = MachineSynchronizer("ps-off", fake_client, BrokenObserver())

        await sync.request_open()
        fake_client.release()
        await sync.wait_idle()

        assert not sync.pending

    @pytest.mark.asyncio
    async def test_new_command_after_resolution(self, fake_client: FakeMachineClient) -> None:
        """Should accept a new command once the previous one resolved."""
        fake_client.release()
        sync = MachineSynchronizer("ps-off", fake_client)

        await sync.request_open()
        await sync.wait_idle()
        outcome = await sync.request_close()
        await sync.wait_idle()

        assert outcome is CommandOutcome.ACCEPTED
        assert fake_client.states["ps-off"] is MachineState.OFF

    @pytest.mark.asyncio
    async def test_close_cancels_waiter(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """Closing the synchronizer should cancel the wait and release the guard."""
        sync = MachineSynchronizer("ps-off", fake_client, observer)
        await sync.request_open()
        await settle()

        await sync.close()

        assert not sync.pending
        assert observer.pushes == []

    @pytest.mark.asyncio
    async def test_wait_idle_without_command(self, fake_client: FakeMachineClient) -> None:
        """Should return immediately when nothing is pending."""
        sync = MachineSynchronizer("ps-off", fake_client)
        assert await sync.wait_idle() is None


class TestReaders:
    """Tests for direct state queries."""

    @pytest.mark.asyncio
    async def test_read_state(self, fake_client: FakeMachineClient) -> None:
        """Should project the remote state."""
        sync = MachineSynchronizer("ps-ready", fake_client)

        assert await sync.read_state() == RUNNING
        assert await sync.read_current_state() is ObservedState.ACTIVE
        assert await sync.read_target_state() is TargetState.OPEN

    @pytest.mark.asyncio
    async def test_reads_during_transition_report_target(
        self, fake_client: FakeMachineClient
    ) -> None:
        """While stopping, reads answer with the awaited state, not the remote one."""
        sync = MachineSynchronizer("ps-ready", fake_client)
        fake_client.state_after_stop = MachineState.READY  # remote lags behind
        await sync.request_close()

        assert await sync.read_current_state() is ObservedState.INACTIVE
        assert await sync.read_target_state() is TargetState.CLOSED
        assert fake_client.count("show") == 0

        fake_client.release()
        await sync.wait_idle()

    @pytest.mark.asyncio
    async def test_not_found_scenario(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """Unknown machine: caller gets ReadFailed, nothing is pushed."""
        sync = MachineSynchronizer("ps-gone", fake_client, observer)

        with pytest.raises(ReadFailed) as exc_info:
            await sync.read_state()

        assert isinstance(exc_info.value, MachineNotFound)
        assert observer.pushes == []

    @pytest.mark.asyncio
    async def test_missing_snapshot_is_not_found(self, fake_client: FakeMachineClient) -> None:
        """A client returning no snapshot should not default to off."""

        async def show_nothing(machine_id: str) -> MachineSnapshot | None:
            return None

        fake_client.show = show_nothing  # type: ignore[method-assign]
        sync = MachineSynchronizer("ps-off", fake_client)

        with pytest.raises(MachineNotFound):
            await sync.read_current_state()

    @pytest.mark.asyncio
    async def test_transport_error(self, fake_client: FakeMachineClient) -> None:
        """Should wrap client errors into ReadFailed."""
        fake_client.show_error = APIError("timeout")
        sync = MachineSynchronizer("ps-off", fake_client)

        with pytest.raises(ReadFailed, match="timeout") as exc_info:
            await sync.read_state()

        assert not isinstance(exc_info.value, MachineNotFound)


class TestReconciler:
    """Tests for reconcile."""

    @pytest.mark.asyncio
    async def test_pushes_current_and_target_together(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """Should push both views in one call."""
        sync = MachineSynchronizer("ps-off", fake_client, observer)

        view = await sync.reconcile()

        assert view == STOPPED
        assert observer.pushes == [("ps-off", STOPPED)]

    @pytest.mark.asyncio
    async def test_idempotent(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """Two reconciliations of an unchanged machine push identical views."""
        sync = MachineSynchronizer("ps-ready", fake_client, observer)

        await sync.reconcile()
        await sync.reconcile()

        assert observer.pushes == [("ps-ready", RUNNING), ("ps-ready", RUNNING)]

    @pytest.mark.asyncio
    async def test_pending_suppresses_reads(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """Ticks during a transition make no remote call and push nothing."""
        sync = MachineSynchronizer("ps-off", fake_client, observer)
        await sync.request_open()
        await settle()

        for _ in range(3):
            assert await sync.reconcile() is None

        assert fake_client.count("show") == 0
        assert observer.pushes == []

        fake_client.release()
        await sync.wait_idle()

    @pytest.mark.asyncio
    async def test_read_failure_keeps_previous_view(
        self,
        fake_client: FakeMachineClient,
        observer: RecordingObserver,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Failed reads are logged and swallowed; nothing new is pushed."""
        sync = MachineSynchronizer("ps-ready", fake_client, observer)
        await sync.reconcile()

        fake_client.show_error = APIError("bad gateway", 502)
        with caplog.at_level(logging.WARNING, logger="machinebridge"):
            assert await sync.reconcile() is None

        assert "bad gateway" in caplog.text
        assert observer.pushes == [("ps-ready", RUNNING)]
        assert sync.last_view == RUNNING

    @pytest.mark.asyncio
    async def test_missing_machine_is_swallowed(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """A deleted machine is not pushed as off."""
        sync = MachineSynchronizer("ps-gone", fake_client, observer)

        assert await sync.reconcile() is None
        assert observer.pushes == []

    @pytest.mark.asyncio
    async def test_command_during_read_drops_result(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """A transition armed while a read is in flight wins over the read."""
        read_started = asyncio.Event()
        finish_read = asyncio.Event()

        async def slow_show(machine_id: str) -> MachineSnapshot:
            read_started.set()
            await finish_read.wait()
            return MachineSnapshot(id=machine_id, name=machine_id, state=MachineState.OFF)

        fake_client.show = slow_show  # type: ignore[method-assign]
        sync = MachineSynchronizer("ps-off", fake_client, observer)

        tick = asyncio.create_task(sync.reconcile())
        await read_started.wait()
        await sync.request_open()
        finish_read.set()

        assert await tick is None
        assert observer.pushes == []

        fake_client.release()
        await sync.close()

    @pytest.mark.asyncio
    async def test_read_spanning_resolved_transition_is_dropped(
        self, fake_client: FakeMachineClient, observer: RecordingObserver
    ) -> None:
        """A read taken before a command must not overwrite its resolution."""
        read_started = asyncio.Event()
        finish_read = asyncio.Event()
        show = fake_client.show

        async def first_show_slow(machine_id: str) -> MachineSnapshot:
            if not read_started.is_set():
                read_started.set()
                await finish_read.wait()
                return MachineSnapshot(id=machine_id, name=machine_id, state=MachineState.OFF)
            return await show(machine_id)

        fake_client.show = first_show_slow  # type: ignore[method-assign]
        sync = MachineSynchronizer("ps-off", fake_client, observer)

        tick = asyncio.create_task(sync.reconcile())
        await read_started.wait()
        fake_client.release()
        await sync.request_open()
        await sync.wait_idle()
        finish_read.set()

        assert await tick is None
        assert observer.pushes == [("ps-off", RUNNING)]
        assert sync.last_view == RUNNING
        assert fake_client.states["ps-off"] is MachineState.READY

    @pytest.mark.asyncio
    async def test_without_observer(self, fake_client: FakeMachineClient) -> None:
        """Should still track the last view without an observer."""
        sync = MachineSynchronizer("ps-off", fake_client)

        await sync.reconcile()

        assert sync.last_view == STOPPED
