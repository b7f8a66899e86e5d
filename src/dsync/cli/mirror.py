"""Mirror command for the dsync CLI.

Commands:
- mirror: Watch a source directory and mirror every change to a destination
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from dsync.core.config import MirrorConfig, load_config
from dsync.core.types import DsyncError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure the dsync logger to write to stderr (and optionally a file).

    Args:
        verbose: Log at DEBUG instead of INFO.
        log_file: Optional path of a log file.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    dsync_logger = logging.getLogger("dsync")
    for handler in dsync_logger.handlers[:]:
        dsync_logger.removeHandler(handler)
    dsync_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    dsync_logger.propagate = False

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    dsync_logger.addHandler(stderr_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        dsync_logger.addHandler(file_handler)


def fail(message: str) -> None:
    """Print a one-line diagnostic and exit with status 1."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@click.command()
@click.argument("source")
@click.argument("destination")
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file with mirror settings.",
)
@click.option("--rsync", "rsync_path", help="rsync executable to use.")
@click.option("--no-initial-sync", is_flag=True, help="Skip the startup full-tree sync.")
@click.option("--poll-interval", type=float, help="Seconds between health checks.")
@click.option("--verbose", "-v", is_flag=True, help="Log debug messages.")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write logs to this file.",
)
def mirror(
    source: str,
    destination: str,
    config_file: Path | None,
    rsync_path: str | None,
    no_initial_sync: bool,
    poll_interval: float | None,
    verbose: bool,
    log_file: Path | None,
) -> None:
    """Mirror SOURCE to DESTINATION, replicating changes as they happen.

    Runs until a fatal error (out of watches, lost source directory, failed
    initial sync), which exits with status 1. Ctrl+C stops the mirror and
    exits with status 0.
    """
    from dsync.sync.engine import MirrorEngine

    setup_logging(verbose, log_file)

    try:
        settings = load_config(config_file) if config_file else {}
        settings.update(source=source, destination=destination)
        if rsync_path:
            settings["rsync_path"] = rsync_path
        if no_initial_sync:
            settings["initial_sync"] = False
        if poll_interval is not None:
            settings["poll_interval"] = poll_interval
        config = MirrorConfig.from_dict(settings)
        config.validate()
        engine = MirrorEngine(config)
    except DsyncError as e:
        fail(str(e))
        return
    except OSError as e:
        fail(f"Error initializing inotify instance: {e}")
        return

    click.echo(f"Mirroring {config.source} -> {config.destination}")

    try:
        reason = engine.run()
    except KeyboardInterrupt:
        click.echo("\nStopping...")
        engine.stop()
        return
    except DsyncError as e:
        engine.stop()
        fail(str(e))
        return

    engine.stop()
    fail(reason)
