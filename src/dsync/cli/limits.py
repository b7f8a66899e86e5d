"""Limits command for the dsync CLI.

Commands:
- limits: Show how many inotify watches this user may hold
"""

from __future__ import annotations

import sys

import click

from dsync.core.config import MAX_USER_WATCHES_PATH, read_max_user_watches
from dsync.core.types import ConfigError


@click.command()
@click.option(
    "--path",
    "limit_path",
    default=MAX_USER_WATCHES_PATH,
    show_default=True,
    help="Where the kernel exposes the watch limit.",
)
def limits(limit_path: str) -> None:
    """Show the inotify watch limit.

    Every watched directory and regular file uses one watch; mirroring a
    tree with more entries than this limit is refused.
    """
    try:
        total = read_max_user_watches(limit_path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"max_user_watches: {total}")
