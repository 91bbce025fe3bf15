"""Machine commands for the machinebridge CLI.

Commands:
- machines: List machines and their door views
- status: Show the door views of one machine
- open: Start a machine
- close: Stop a machine
"""

from __future__ import annotations

import asyncio
import sys

import click

from machinebridge.cli.config import require_config
from machinebridge.client.api import APIError, MachineClient
from machinebridge.core.projection import project
from machinebridge.core.types import DoorCommand
from machinebridge.sync.synchronizer import MachineSynchronizer
from machinebridge.sync.types import CommandOutcome, CommandRejected, ReadFailed


def _format_view(machine_id: str, current: str, target: str) -> str:
    return f"{machine_id}: current={current} target={target}"


@click.command("machines")
def machines() -> None:
    """List machines and their door views."""
    config = require_config()

    async def _list() -> None:
        async with MachineClient(config) as client:
            for machine in await client.list_machines():
                view = project(machine.state)
                click.echo(
                    f"{machine.id}\t{machine.name}\t{machine.state.value}\t"
                    f"{view.current.value}/{view.target.value}"
                )

    try:
        asyncio.run(_list())
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.command("status")
@click.argument("machine_id")
def status(machine_id: str) -> None:
    """Show the door views of MACHINE_ID."""
    config = require_config()

    async def _status() -> None:
        async with MachineClient(config) as client:
            view = await MachineSynchronizer(machine_id, client).read_state()
            click.echo(_format_view(machine_id, view.current.value, view.target.value))

    try:
        asyncio.run(_status())
    except ReadFailed as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _run_command(machine_id: str, command: DoorCommand, wait: bool) -> None:
    config = require_config()

    async def _command() -> int:
        async with MachineClient(config) as client:
            sync = MachineSynchronizer(machine_id, client)
            outcome = await sync.request(command)
            if outcome is CommandOutcome.REDUNDANT:
                click.echo(f"{machine_id}: transition already pending")
                return 0
            if not wait:
                await sync.close()
                click.echo(f"{machine_id}: {command.value} requested")
                return 0

            click.echo(f"Waiting for {machine_id} to {command.value}...")
            failure = await sync.wait_idle()
            view = sync.last_view
            if view is not None:
                click.echo(_format_view(machine_id, view.current.value, view.target.value))
            if failure is not None:
                click.echo(f"Warning: {failure}", err=True)
                return 1
            return 0

    try:
        exit_code = asyncio.run(_command())
    except CommandRejected as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if exit_code:
        sys.exit(exit_code)


@click.command("open")
@click.argument("machine_id")
@click.option("--no-wait", is_flag=True, help="Return as soon as the command is accepted.")
def open_cmd(machine_id: str, no_wait: bool) -> None:
    """Start MACHINE_ID and wait until it is ready."""
    _run_command(machine_id, DoorCommand.OPEN, wait=not no_wait)


@click.command("close")
@click.argument("machine_id")
@click.option("--no-wait", is_flag=True, help="Return as soon as the command is accepted.")
def close_cmd(machine_id: str, no_wait: bool) -> None:
    """Stop MACHINE_ID and wait until it is off."""
    _run_command(machine_id, DoorCommand.CLOSE, wait=not no_wait)
