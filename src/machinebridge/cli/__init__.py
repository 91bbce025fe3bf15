"""Command-line interface for machinebridge.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Store the API key and polling options
- machines: List machines and their door views
- status: Show the door views of one machine
- open: Start a machine
- close: Stop a machine
- run: Keep door views of all machines up to date
"""

from __future__ import annotations

import logging

import click

from machinebridge.cli.config import (
    get_config_dir,
    get_config_file,
    load_config,
    resolve_config,
    save_config,
)
from machinebridge.cli.machines import close_cmd, machines, open_cmd, status
from machinebridge.cli.run import configure, run
from machinebridge.logging_setup import setup_logging


@click.group()
@click.version_option(package_name="machinebridge")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """MachineBridge - remote machines as smart-home doors."""
    setup_logging(logging.DEBUG if verbose else logging.INFO)


# Configuration
cli.add_command(configure)

# Machine commands
cli.add_command(machines)
cli.add_command(status)
cli.add_command(open_cmd)
cli.add_command(close_cmd)

# Bridge
cli.add_command(run)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "resolve_config",
    "save_config",
]
