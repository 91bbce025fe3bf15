"""Per-machine state synchronizer.

This module provides:
- MachineSynchronizer: command handler, transition waiter and reconciler
  for a single remote machine

Lifecycle of a command:
    request(open) ─► reserve AwaitingTarget(ready) ─► client.start()
                                                        │
                       rejected ◄── release, raise ─────┤
                                                        ▼
                 waiter task: client.wait_for(ready) ─► Idle ─► reconcile()

While a transition is awaited, reads answer with the awaited state and
reconciliation neither reads the remote nor pushes anything, so the host
never sees intermediate states such as "stopping" reported as running.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from machinebridge.client.api import NotFoundError
from machinebridge.core.projection import expected_state_for, project
from machinebridge.core.types import DoorCommand, ObservedState, StateView, TargetState
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
    from machinebridge.core.types import MachineState
    from machinebridge.sync.types import (
        RemoteMachineClient,
        StateObserver,
        TransitionState,
    )

logger = logging.getLogger(__name__)


class MachineSynchronizer:
    """Keeps the host's view of one machine in step with the remote service.

    All local state changes happen between suspension points, so other
    tasks never observe a half-updated synchronizer.

    Usage:
        sync = MachineSynchronizer("ps123", client, observer)
        await sync.request_open()
        await sync.wait_idle()  # optional, the waiter runs in the background
        await sync.reconcile()  # normally driven by ReconcileScheduler
    """

    def __init__(
        self,
        machine_id: str,
        client: RemoteMachineClient,
        observer: StateObserver | None = None,
    ) -> None:
        """Initialize the synchronizer.

        Args:
            machine_id: Id of the remote machine.
            client: Remote client, shared with other synchronizers.
            observer: Receives every reconciled view.
        """
        self._machine_id = machine_id
        self._client = client
        self._observer = observer
        self._transition: TransitionState = IDLE
        self._waiter: asyncio.Task[None] | None = None
        self._last_view: StateView | None = None
        self._last_wait_error: WaitFailed | None = None
        # Bumped by every accepted or attempted command.
        self._generation = 0

    @property
    def machine_id(self) -> str:
        """Id of the synchronized machine."""
        return self._machine_id

    @property
    def transition(self) -> TransitionState:
        """Current transition state."""
        return self._transition

    @property
    def pending(self) -> bool:
        """Whether a transition is in flight."""
        return self._transition.pending

    @property
    def last_view(self) -> StateView | None:
        """Last view pushed to the observer."""
        return self._last_view

    # === Command handler ===

    async def request(self, command: DoorCommand | str | bool) -> CommandOutcome:
        """Issue a command against the remote machine.

        Returns once the remote accepted the command; the terminal state is
        awaited in the background. A command arriving while another
        transition is pending is ignored and logged.

        Args:
            command: Desired door state (see DoorCommand.parse).

        Returns:
            ACCEPTED if a transition was started, REDUNDANT if ignored.

        Raises:
            ValueError: If the command is not recognised.
            CommandRejected: If the remote refused or could not be reached.
        """
        command = DoorCommand.parse(command)
        current = self._transition
        if isinstance(current, AwaitingTarget):
            logger.warning(
                "Ignoring %s for machine %s: still waiting for %s",
                command.value,
                self._machine_id,
                current.state.value,
            )
            return CommandOutcome.REDUNDANT

        expected = expected_state_for(command)
        logger.debug("Set target door state for %s to %s", self._machine_id, command.value)

        # Reserve the transition before the remote call so ticks and commands
        # arriving while it is in flight see it as pending.
        self._transition = AwaitingTarget(state=expected, command=command)
        self._generation += 1
        try:
            if command is DoorCommand.OPEN:
                await self._client.start(self._machine_id)
            else:
                await self._client.stop(self._machine_id)
        except asyncio.CancelledError:
            # No waiter exists yet, so nothing else would release the slot.
            self._transition = IDLE
            raise
        except Exception as e:
            self._transition = IDLE
            logger.warning(
                "Remote rejected %s for machine %s: %s",
                command.value,
                self._machine_id,
                e,
            )
            raise CommandRejected(
                self._machine_id,
                f"Could not {command.value} machine {self._machine_id}: {e}",
            ) from e

        self._last_wait_error = None
        self._waiter = asyncio.create_task(
            self._wait_and_reconcile(expected),
            name=f"wait-{self._machine_id}-{expected.value}",
        )
        return CommandOutcome.ACCEPTED

    async def request_open(self) -> CommandOutcome:
        """Start the machine."""
        return await self.request(DoorCommand.OPEN)

    async def request_close(self) -> CommandOutcome:
        """Stop the machine."""
        return await self.request(DoorCommand.CLOSE)

    # === Transition waiter ===

    async def _wait_and_reconcile(self, state: MachineState) -> None:
        """Await the terminal state, release the transition and reconcile."""
        logger.debug("Waiting for %s to change to %s", self._machine_id, state.value)
        try:
            await self._client.wait_for(self._machine_id, state)
        except asyncio.CancelledError:
            self._transition = IDLE
            raise
        except TimeoutError as e:
            self._last_wait_error = WaitTimedOut(self._machine_id, str(e))
            logger.warning(
                "Timed out waiting for %s to change to %s: %s",
                self._machine_id,
                state.value,
                e,
            )
        except Exception as e:
            self._last_wait_error = WaitFailed(self._machine_id, str(e))
            logger.warning(
                "Waiting for %s to change to %s failed: %s",
                self._machine_id,
                state.value,
                e,
            )
        else:
            logger.debug("%s finished changing to %s", self._machine_id, state.value)

        self._transition = IDLE
        try:
            await self.reconcile()
        except Exception:
            logger.exception("Error reconciling %s after transition", self._machine_id)

    async def wait_idle(self) -> WaitFailed | None:
        """Wait for the outstanding transition, if any, to resolve.

        Returns:
            The failure of the last transition wait, or None if it succeeded.
        """
        if self._waiter is not None:
            await self._waiter
        return self._last_wait_error

    async def close(self) -> None:
        """Cancel the outstanding transition wait (used on shutdown)."""
        waiter, self._waiter = self._waiter, None
        if waiter is not None and not waiter.done():
            waiter.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await waiter
        self._transition = IDLE

    # === Readers ===

    async def read_state(self) -> StateView:
        """Read both views of the machine.

        While a transition is pending this answers with the awaited state
        without contacting the remote.

        Raises:
            ReadFailed: If the remote could not be read.
            MachineNotFound: If the remote has no such machine.
        """
        current = self._transition
        if isinstance(current, AwaitingTarget):
            return project(current.state)
        return await self._read_remote()

    async def read_current_state(self) -> ObservedState:
        """Read whether the machine is running right now."""
        view = await self.read_state()
        logger.debug("Fetched current state %s for machine %s", view.current.value, self._machine_id)
        return view.current

    async def read_target_state(self) -> TargetState:
        """Read what the machine is converging toward."""
        view = await self.read_state()
        logger.debug("Fetched target state %s for machine %s", view.target.value, self._machine_id)
        return view.target

    async def _read_remote(self) -> StateView:
        try:
            machine = await self._client.show(self._machine_id)
        except NotFoundError as e:
            raise MachineNotFound(self._machine_id, f"Machine {self._machine_id} not found") from e
        except Exception as e:
            raise ReadFailed(
                self._machine_id, f"Could not read machine {self._machine_id}: {e}"
            ) from e
        if machine is None:
            raise MachineNotFound(self._machine_id, f"Machine {self._machine_id} not found")
        return project(machine.state)

    # === Reconciler ===

    async def reconcile(self) -> StateView | None:
        """Refresh the host's view from the remote service.

        Read failures are logged and the previously pushed view stays in
        place.

        Returns:
            The pushed view, or None if nothing was pushed.
        """
        if self._transition.pending:
            logger.debug("Skipping refresh of %s: transition pending", self._machine_id)
            return None

        generation = self._generation
        try:
            view = await self._read_remote()
        except ReadFailed as e:
            logger.warning("Could not refresh machine %s: %s", self._machine_id, e)
            return None

        # A command issued while the read was in flight makes the result
        # stale, even if its transition has already resolved.
        if self._transition.pending or self._generation != generation:
            logger.debug("Dropping refresh of %s: transition started", self._machine_id)
            return None

        self._last_view = view
        if self._observer is not None:
            self._observer.push(self._machine_id, view)
        logger.debug(
            "Pushed state %s/%s for machine %s",
            view.current.value,
            view.target.value,
            self._machine_id,
        )
        return view
