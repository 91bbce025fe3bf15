"""Bridge commands for the machinebridge CLI.

Commands:
- configure: Store the API key and polling options
- run: Discover machines and keep their door views up to date
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from typing import TYPE_CHECKING

import click

from machinebridge.cli.config import load_config, require_config, save_config
from machinebridge.client.api import APIError, MachineClient
from machinebridge.core.config import BridgeConfig, ConfigError
from machinebridge.core.types import StateView
from machinebridge.platform import BridgePlatform, LoggingObserver
from machinebridge.sync.scheduler import ReconcileScheduler

if TYPE_CHECKING:
    from machinebridge.sync.types import StateObserver

logger = logging.getLogger(__name__)


class EchoObserver:
    """Observer that prints every pushed view."""

    def push(self, machine_id: str, view: StateView) -> None:
        click.echo(f"{machine_id}: current={view.current.value} target={view.target.value}")


async def _check_access(config: BridgeConfig) -> bool:
    async with MachineClient(config) as client:
        return await client.health_check()


@click.command()
@click.option("--api-key", prompt=True, hide_input=True, help="API key of the machine service.")
@click.option("--poll-interval", type=float, default=None, help="Seconds between refreshes.")
@click.option("--api-url", default=None, help="Base URL of the machine API.")
@click.option("--verify", is_flag=True, help="Check the API key against the remote before saving.")
def configure(
    api_key: str, poll_interval: float | None, api_url: str | None, verify: bool
) -> None:
    """Store the API key and polling options."""
    config = load_config()
    config["api_key"] = api_key
    if poll_interval is not None:
        config["poll_interval"] = poll_interval
    if api_url is not None:
        config["api_url"] = api_url

    try:
        bridge_config = BridgeConfig.from_dict(config)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if verify and not asyncio.run(_check_access(bridge_config)):
        click.echo(f"Error: Could not list machines at {bridge_config.api_url}", err=True)
        sys.exit(1)

    save_config(config)
    click.echo("Configuration saved.")


async def run_bridge(
    config: BridgeConfig,
    stop_event: asyncio.Event | None = None,
    observer: StateObserver | None = None,
) -> None:
    """Run the bridge until stop_event is set (or forever).

    Args:
        config: Bridge configuration.
        stop_event: Event that ends the bridge when set.
        observer: Receives pushed views; prints them by default.
    """
    stop_event = stop_event or asyncio.Event()
    async with MachineClient(config) as client:
        scheduler = ReconcileScheduler(interval=config.poll_interval)
        platform = BridgePlatform(config, client, observer or EchoObserver(), scheduler)

        accessories = await platform.discover()
        logger.info("Bridging %d machines", len(accessories))
        platform.start()
        try:
            # Push initial views without waiting for the first interval
            await scheduler.tick()
            await stop_event.wait()
        finally:
            await platform.stop()


@click.command()
@click.option("--poll-interval", type=float, default=None, help="Seconds between refreshes.")
@click.option("--quiet", is_flag=True, help="Log views instead of printing them.")
def run(poll_interval: float | None, quiet: bool) -> None:
    """Discover machines and keep their door views up to date.

    Runs until interrupted with Ctrl+C.
    """
    config = require_config({"poll_interval": poll_interval})
    observer = LoggingObserver() if quiet else None

    try:
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(run_bridge(config, observer=observer))
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo("Bridge stopped.")
