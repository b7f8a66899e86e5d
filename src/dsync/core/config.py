"""Configuration for the mirroring daemon.

This module provides:
- MirrorConfig: Settings for one source -> destination mirror
- load_config: Read settings from a JSON file
- verify_directory: Validate a startup directory argument
- read_max_user_watches: Query the inotify watch limit
"""

from __future__ import annotations

import json
import os
import stat
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from watchdog.observers.inotify_c import DEFAULT_EVENT_BUFFER_SIZE

from dsync.core.types import ConfigError

MAX_USER_WATCHES_PATH = "/proc/sys/fs/inotify/max_user_watches"

# Symlinks, devices, FIFOs and sockets are never mirrored
SKIP_SPECIAL_FILES = ["--no-links", "--no-devices", "--no-specials"]

DEFAULT_RSYNC_OPTIONS = ["-a", "--partial", *SKIP_SPECIAL_FILES]
DEFAULT_INITIAL_SYNC_OPTIONS = [
    "-az",
    "--delete",
    "--fuzzy",
    "--partial",
    *SKIP_SPECIAL_FILES,
]


def strip_trailing_separators(path: str) -> str:
    """Remove trailing path separators, keeping a lone "/".

    Args:
        path: Path as given on the command line.

    Returns:
        The path without trailing separators.
    """
    stripped = path.rstrip(os.sep)
    if not stripped and path.startswith(os.sep):
        return os.sep
    return stripped


def _type_error(name: str, expected: str, value: Any) -> str:
    return f"Invalid value for {name}: expected {expected}, got {value!r}"


@dataclass
class MirrorConfig:
    """Settings for one mirror.

    Attributes:
        source: Directory being watched.
        destination: Directory receiving the replicated changes.
        rsync_path: rsync executable.
        rsync_options: Options for per-change rsync calls.
        initial_sync_options: Options for the startup full-tree rsync.
        initial_sync: Whether to mirror the whole tree at startup.
        buffer_size: Size of a single inotify read.
        poll_interval: Seconds between worker health checks.
        max_watches_path: Where the kernel exposes the watch limit.
    """

    source: str
    destination: str
    rsync_path: str = "rsync"
    rsync_options: list[str] = field(default_factory=lambda: list(DEFAULT_RSYNC_OPTIONS))
    initial_sync_options: list[str] = field(
        default_factory=lambda: list(DEFAULT_INITIAL_SYNC_OPTIONS)
    )
    initial_sync: bool = True
    buffer_size: int = DEFAULT_EVENT_BUFFER_SIZE
    poll_interval: float = 1.0
    max_watches_path: str = MAX_USER_WATCHES_PATH

    def __post_init__(self) -> None:
        """Check field types and normalize directory paths.

        Raises:
            ConfigError: If a value has the wrong type or is out of range.
        """
        for name in ("source", "destination"):
            value = getattr(self, name)
            if not isinstance(value, (str, os.PathLike)):
                raise ConfigError(_type_error(name, "a path", value))
        for name in ("rsync_path", "max_watches_path"):
            if not isinstance(getattr(self, name), str):
                raise ConfigError(_type_error(name, "a string", getattr(self, name)))
        for name in ("rsync_options", "initial_sync_options"):
            value = getattr(self, name)
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ConfigError(_type_error(name, "a list of strings", value))
        if not isinstance(self.initial_sync, bool):
            raise ConfigError(_type_error("initial_sync", "true or false", self.initial_sync))
        # bool is an int subclass, so true/false must be refused explicitly
        if isinstance(self.buffer_size, bool) or not isinstance(self.buffer_size, int):
            raise ConfigError(_type_error("buffer_size", "an integer", self.buffer_size))
        if isinstance(self.poll_interval, bool) or not isinstance(
            self.poll_interval, (int, float)
        ):
            raise ConfigError(_type_error("poll_interval", "a number", self.poll_interval))

        self.source = strip_trailing_separators(os.fspath(self.source))
        self.destination = strip_trailing_separators(os.fspath(self.destination))
        if self.buffer_size <= 0:
            raise ConfigError(f"buffer_size must be positive, got {self.buffer_size}")
        if self.poll_interval <= 0:
            raise ConfigError(f"poll_interval must be positive, got {self.poll_interval}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MirrorConfig:
        """Build a config from a dictionary (e.g. a parsed config file).

        Raises:
            ConfigError: On unknown keys or missing directories.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
        if not data.get("source") or not data.get("destination"):
            raise ConfigError("Both 'source' and 'destination' are required")
        return cls(**data)

    def validate(self) -> None:
        """Check that both directories exist.

        Raises:
            ConfigError: If either path is not an existing directory.
        """
        verify_directory(self.source)
        verify_directory(self.destination)


def load_config(path: Path) -> dict[str, Any]:
    """Load settings from a JSON config file.

    Raises:
        ConfigError: If the file cannot be read or is not a JSON object.
    """
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def verify_directory(directory: str) -> None:
    """Make sure a directory exists.

    Raises:
        ConfigError: If the path is missing or is not a directory.
    """
    try:
        mode = os.stat(directory).st_mode
    except OSError as e:
        raise ConfigError(f"No such directory: {directory}") from e
    if not stat.S_ISDIR(mode):
        raise ConfigError(f"{directory} is not a directory!")


def read_max_user_watches(path: str = MAX_USER_WATCHES_PATH) -> int:
    """Read the per-user inotify watch limit.

    Raises:
        ConfigError: If the value is unreadable or not a positive integer.
    """
    try:
        with open(path, encoding="ascii") as f:
            raw = f.read().strip()
    except OSError as e:
        raise ConfigError(f"Error determining max_user_watches: {e}") from e
    if not raw.isdigit() or int(raw) <= 0:
        raise ConfigError(f"Unparseable max_user_watches: {raw!r}")
    return int(raw)
