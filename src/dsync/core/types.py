"""Shared types for the mirroring engine.

This module provides:
- DsyncError and its subclasses: Exception hierarchy for every component
- ChangeKind, Change: Normalized events decoded from the inotify stream
- TrackedPath: Watch table entry
- ReplicationMode: How a single file is replicated
- WorkerReport: Health message sent by a worker when it ends
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum, auto

# =============================================================================
# Errors
# =============================================================================


class DsyncError(Exception):
    """Base exception for dsync errors."""


class ConfigError(DsyncError):
    """Invalid arguments or configuration."""


class WatchError(DsyncError):
    """Base exception for watch management errors."""


class WatchCapacityExceeded(WatchError):
    """The watch table is full.

    Always fatal: once a path cannot be watched, changes below it are
    silently lost.
    """

    def __init__(self, path: str, capacity: int) -> None:
        self.path = path
        self.capacity = capacity
        super().__init__(f"Out of inotify watches ({capacity}) while watching {path}")


class WatchInstallError(WatchError):
    """The kernel refused a watch for a single path (permission, vanished)."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Error watching {path}: {reason}")


class WatchNotFound(WatchError):
    """No entry for a handle, usually removed by an earlier event."""

    def __init__(self, handle: int) -> None:
        self.handle = handle
        super().__init__(f"No watch for handle {handle}")


class WalkError(WatchError):
    """The directory handed to the tree walker could not be listed."""


class EventStreamError(DsyncError):
    """Reading or decoding the notification stream failed."""


class TruncatedRecordError(EventStreamError):
    """A record header or name runs past the end of the buffer."""


class QueueOverflowError(EventStreamError):
    """The kernel event queue overflowed and events were dropped."""


class SourceRootLost(DsyncError):
    """The source root itself was deleted or moved away."""


class ReplicationError(DsyncError):
    """A replication step that cannot be skipped failed."""


# =============================================================================
# Events
# =============================================================================


class ChangeKind(IntEnum):
    """Kind of a normalized change."""

    CREATED = auto()
    DELETED = auto()
    MODIFIED_CONTENT = auto()
    MODIFIED_METADATA = auto()
    MOVED_AWAY = auto()
    MOVED_IN = auto()
    RENAMED = auto()  # Derived from an adjacent MOVED_AWAY/MOVED_IN pair
    IGNORED = auto()  # Kernel dropped the watch


@dataclass(frozen=True)
class Change:
    """A normalized change decoded from one (or two paired) inotify records.

    Attributes:
        subject_handle: Watch handle the record was reported on
        name: Entry name inside the watched directory, empty for self-events
        is_directory: Whether the entry is a directory
        kind: What happened
        cookie: Move correlation token (0 when absent)
        target_handle: For RENAMED, the handle of the destination directory
        target_name: For RENAMED, the new entry name
    """

    subject_handle: int
    name: str
    is_directory: bool
    kind: ChangeKind
    cookie: int = 0
    target_handle: int | None = None
    target_name: str | None = None

    @property
    def is_self_event(self) -> bool:
        """True when the change concerns the watched path itself."""
        return self.name == ""

    def __repr__(self) -> str:
        """Human-readable representation."""
        kind = "dir" if self.is_directory else "file"
        if self.kind == ChangeKind.RENAMED:
            return (
                f"Change(RENAMED, {self.subject_handle}:{self.name!r} -> "
                f"{self.target_handle}:{self.target_name!r}, {kind})"
            )
        return f"Change({self.kind.name}, {self.subject_handle}:{self.name!r}, {kind})"


# =============================================================================
# Watch table
# =============================================================================


@dataclass
class TrackedPath:
    """An active watch.

    Attributes:
        handle: Kernel watch descriptor
        path: Absolute path being watched
        is_directory: Directory watch (True) or file watch (False)
        source_cursor: Byte offset last replicated from the source
        destination_cursor: Byte offset last replicated to the destination
    """

    handle: int
    path: str
    is_directory: bool
    source_cursor: int = 0
    destination_cursor: int = 0


# =============================================================================
# Replication / supervision
# =============================================================================


class ReplicationMode(Enum):
    """How a file is replicated."""

    FRESH = "fresh"
    APPEND = "append"


@dataclass
class WorkerReport:
    """Sent on the supervisor health channel when a worker thread ends.

    Attributes:
        worker_name: Name of the worker thread
        error: Exception that ended the worker, None for a clean stop
    """

    worker_name: str
    error: BaseException | None = None

    @property
    def failed(self) -> bool:
        """Whether the worker ended because of an error."""
        return self.error is not None
