"""Command-line interface for dsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- mirror: Watch a source directory and mirror changes to a destination
- limits: Show the inotify watch limit
"""

from __future__ import annotations

import click

from dsync.cli.limits import limits
from dsync.cli.mirror import mirror, setup_logging


@click.group()
@click.version_option(package_name="dsync")
def cli() -> None:
    """dsync - Live directory mirroring over inotify and rsync."""


cli.add_command(mirror)
cli.add_command(limits)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "setup_logging",
]
