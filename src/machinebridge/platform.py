"""Host platform adapter.

This module provides:
- AccessoryInfo: accessory metadata derived from a remote machine
- BridgePlatform: discovers machines, registers one accessory and one
  synchronizer per machine, and routes host commands to them
- LoggingObserver: observer that writes every pushed view to the log

The host platform owns the accessory protocol; this adapter only turns
machines into accessories and pushes into observer calls.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from machinebridge.core.types import DoorCommand
from machinebridge.sync.synchronizer import MachineSynchronizer

if TYPE_CHECKING:
    from machinebridge.client.api import MachineClient, MachineSnapshot
    from machinebridge.core.config import BridgeConfig
    from machinebridge.core.types import StateView
    from machinebridge.sync.scheduler import ReconcileScheduler
    from machinebridge.sync.types import CommandOutcome, StateObserver

logger = logging.getLogger(__name__)

MANUFACTURER = "Paperspace"

# Namespace for accessory ids, stable across restarts
ACCESSORY_NAMESPACE = uuid.UUID("7d0c3b5e-9a44-4f37-8b0e-2f6a1c9d8e41")


def accessory_uuid(machine_id: str) -> str:
    """Deterministic accessory id for a machine id."""
    return str(uuid.uuid5(ACCESSORY_NAMESPACE, machine_id))


@dataclass
class AccessoryInfo:
    """Accessory metadata exposed to the host platform.

    Attributes:
        uuid: Accessory id derived from the machine id.
        machine_id: Remote machine id.
        display_name: Name shown by the host.
        model: Operating system of the machine.
        serial_number: Public IP if the machine has one, else its id.
        manufacturer: Always "Paperspace".
        obstruction_detected: Doors never report an obstruction.
    """

    uuid: str
    machine_id: str
    display_name: str
    model: str
    serial_number: str
    manufacturer: str = MANUFACTURER
    obstruction_detected: bool = False

    @classmethod
    def from_machine(cls, machine: MachineSnapshot) -> AccessoryInfo:
        """Create from a machine snapshot."""
        return cls(
            uuid=accessory_uuid(machine.id),
            machine_id=machine.id,
            display_name=machine.name,
            model=machine.os,
            serial_number=machine.public_ip_address or machine.id,
        )


class LoggingObserver:
    """Observer that logs every pushed view."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def push(self, machine_id: str, view: StateView) -> None:
        self._log.info(
            "Machine %s: current=%s target=%s",
            machine_id,
            view.current.value,
            view.target.value,
        )


class BridgePlatform:
    """Bridges remote machines to the host platform.

    Usage:
        platform = BridgePlatform(config, client, observer, scheduler)
        await platform.discover()
        platform.start()
        await platform.set_target_door_state(machine_id, "open")
    """

    def __init__(
        self,
        config: BridgeConfig,
        client: MachineClient,
        observer: StateObserver,
        scheduler: ReconcileScheduler,
    ) -> None:
        """Initialize the platform.

        Args:
            config: Bridge configuration.
            client: Remote client shared by all synchronizers.
            observer: Receives every reconciled view.
            scheduler: Drives periodic reconciliation.
        """
        self._config = config
        self._client = client
        self._observer = observer
        self._scheduler = scheduler
        self._accessories: dict[str, AccessoryInfo] = {}
        logger.debug("Finished initializing platform: %s", config.name)

    @property
    def accessories(self) -> list[AccessoryInfo]:
        """Registered accessories."""
        return list(self._accessories.values())

    def _attach(self, info: AccessoryInfo) -> MachineSynchronizer:
        sync = MachineSynchronizer(info.machine_id, self._client, self._observer)
        self._accessories[info.uuid] = info
        self._scheduler.add(sync)
        return sync

    def configure_accessory(self, info: AccessoryInfo) -> MachineSynchronizer:
        """Attach a synchronizer to an accessory the host already knows.

        Args:
            info: Accessory restored by the host.

        Returns:
            The synchronizer handling the accessory.
        """
        logger.info("Restoring accessory: %s", info.display_name)
        return self._attach(info)

    async def discover(self) -> list[AccessoryInfo]:
        """Discover machines and register the ones not known yet.

        Returns:
            Newly registered accessories.

        Raises:
            APIError: If machines cannot be listed.
        """
        machines = await self._client.list_machines()
        if not machines:
            logger.warning("No machines found")
            return []

        registered = []
        for machine in machines:
            info = AccessoryInfo.from_machine(machine)
            if info.uuid in self._accessories:
                continue
            logger.info("Registering new accessory: %s", machine.name)
            self._attach(info)
            registered.append(info)
        return registered

    def get(self, machine_id: str) -> MachineSynchronizer | None:
        """Get the synchronizer of a machine."""
        return self._scheduler.get(machine_id)

    def _require(self, machine_id: str) -> MachineSynchronizer:
        sync = self.get(machine_id)
        if sync is None:
            raise KeyError(f"Unknown machine: {machine_id}")
        return sync

    async def set_target_door_state(
        self, machine_id: str, value: object
    ) -> CommandOutcome | None:
        """Handle a target door state set by the host.

        Unrecognized values are logged and ignored.

        Returns:
            Outcome of the command, or None if the value was ignored.

        Raises:
            KeyError: If the machine is not registered.
            CommandRejected: If the remote refused the command.
        """
        sync = self._require(machine_id)
        try:
            command = DoorCommand.parse(value)
        except ValueError:
            logger.warning("Unrecognized target door state %s", value)
            return None
        return await sync.request(command)

    async def get_state(self, machine_id: str) -> StateView:
        """Answer a direct state query from the host.

        Raises:
            KeyError: If the machine is not registered.
            ReadFailed: If the machine state cannot be read.
        """
        return await self._require(machine_id).read_state()

    async def remove(self, machine_id: str) -> None:
        """Remove a machine's accessory and stop synchronizing it."""
        sync = self._scheduler.remove(machine_id)
        if sync is not None:
            await sync.close()
        self._accessories.pop(accessory_uuid(machine_id), None)

    def start(self) -> None:
        """Start periodic reconciliation."""
        self._scheduler.start()

    async def stop(self) -> None:
        """Stop reconciliation and cancel outstanding transition waits."""
        self._scheduler.stop()
        for machine_id in self._scheduler.machine_ids:
            sync = self._scheduler.get(machine_id)
            if sync is not None:
                await sync.close()
