"""Bounded table of active inotify watches.

This module provides:
- WatchBackend: Protocol for the object that talks to the kernel
- WatchTable: handle -> TrackedPath mapping with capacity accounting

The table is shared by the initial tree walk and every worker thread, so all
mutations happen under a single lock. The capacity is read once at startup
from the kernel limit; running out of watches is fatal because the kernel
would silently stop reporting changes below the unwatched path.
"""

from __future__ import annotations

import errno
import logging
import os
import threading
from typing import Protocol

from dsync.core.types import (
    TrackedPath,
    WatchCapacityExceeded,
    WatchInstallError,
    WatchNotFound,
)
from dsync.watch.inotify import DIRECTORY_EVENT_MASK, FILE_EVENT_MASK

logger = logging.getLogger(__name__)


class WatchBackend(Protocol):
    """What the table needs from an inotify instance."""

    def add_watch(self, path: str, mask: int) -> int:
        """Watch a path and return its descriptor, raising OSError on failure."""
        ...

    def rm_watch(self, wd: int) -> None:
        """Remove a watch descriptor, raising OSError on failure."""
        ...


def _is_under(path: str, root: str) -> bool:
    """Check whether path is root or lies below it."""
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


class WatchTable:
    """Active watches, keyed by kernel handle.

    Invariant: count <= capacity. An install at full capacity raises
    WatchCapacityExceeded without touching the table and marks the table
    exhausted so the supervisor can stop the process even if the caller
    swallowed the exception.

    Usage:
        table = WatchTable(notifier, capacity=read_max_user_watches())
        wd = table.install("/srv/data", is_directory=True)
        entry = table.lookup(wd)
        table.remove(wd)
    """

    def __init__(self, backend: WatchBackend, capacity: int) -> None:
        """Initialize the table.

        Args:
            backend: Inotify instance used to add and remove watches.
            capacity: Maximum number of simultaneous watches.
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._backend = backend
        self._capacity = capacity
        self._entries: dict[int, TrackedPath] = {}
        self._by_path: dict[str, int] = {}
        self._lock = threading.RLock()
        self._exhausted = threading.Event()

    @property
    def capacity(self) -> int:
        """Maximum number of simultaneous watches."""
        return self._capacity

    @property
    def count(self) -> int:
        """Number of active watches."""
        with self._lock:
            return len(self._entries)

    @property
    def exhausted(self) -> bool:
        """Whether an install was refused for lack of capacity."""
        return self._exhausted.is_set()

    def __len__(self) -> int:
        return self.count

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._entries

    def install(self, path: str, is_directory: bool) -> int:
        """Start watching a path.

        Args:
            path: Absolute path to watch.
            is_directory: Selects the directory or file event mask.

        Returns:
            The watch handle.

        Raises:
            WatchCapacityExceeded: The table (or the kernel) is out of watches.
            WatchInstallError: The kernel refused this one path.
        """
        mask = DIRECTORY_EVENT_MASK if is_directory else FILE_EVENT_MASK
        with self._lock:
            if len(self._entries) >= self._capacity:
                self._exhausted.set()
                logger.error("Error, out of inotify watches! (%d in use)", self._capacity)
                raise WatchCapacityExceeded(path, self._capacity)

            try:
                handle = self._backend.add_watch(path, mask)
            except OSError as e:
                if e.errno == errno.ENOSPC:
                    self._exhausted.set()
                    logger.error("Kernel is out of inotify watches at %s", path)
                    raise WatchCapacityExceeded(path, self._capacity) from e
                raise WatchInstallError(path, e.strerror or str(e)) from e

            existing = self._entries.get(handle)
            if existing is not None:
                # Same inode seen again (re-install or hard link)
                self._drop_path_index(existing)
                existing.path = path
                existing.is_directory = is_directory
                self._by_path[path] = handle
                logger.debug("Already watching %s (%d)", path, handle)
                return handle

            self._entries[handle] = TrackedPath(
                handle=handle,
                path=path,
                is_directory=is_directory,
            )
            self._by_path[path] = handle

        logger.info(
            "Now watching: %s (%s, handle %d)",
            path,
            "directory" if is_directory else "file",
            handle,
        )
        return handle

    def remove(self, handle: int) -> None:
        """Stop watching a handle. Unknown handles are ignored."""
        with self._lock:
            entry = self._entries.pop(handle, None)
            if entry is None:
                return
            self._drop_path_index(entry)
            try:
                self._backend.rm_watch(handle)
            except OSError as e:
                # Kernel already dropped it (path deleted)
                logger.debug("rm_watch(%d) for %s: %s", handle, entry.path, e)
        logger.info("Stopped watching: %s (handle %d)", entry.path, handle)

    def forget(self, handle: int) -> TrackedPath | None:
        """Drop an entry the kernel has already removed (IN_IGNORED)."""
        with self._lock:
            entry = self._entries.pop(handle, None)
            if entry is not None:
                self._drop_path_index(entry)
        if entry is not None:
            logger.debug("Watch %d for %s released by the kernel", handle, entry.path)
        return entry

    def remove_tree(self, path: str) -> int:
        """Stop watching a path and everything below it.

        Returns:
            Number of watches removed.
        """
        with self._lock:
            handles = [h for h, e in self._entries.items() if _is_under(e.path, path)]
            for handle in handles:
                self.remove(handle)
        return len(handles)

    def rename_tree(self, old_path: str, new_path: str) -> int:
        """Rewrite paths after a move inside the watched tree.

        Watches follow inodes, so only the recorded paths change.

        Returns:
            Number of entries updated.
        """
        with self._lock:
            moved = [e for e in self._entries.values() if _is_under(e.path, old_path)]
            for entry in moved:
                self._drop_path_index(entry)
            for entry in moved:
                entry.path = new_path + entry.path[len(old_path):]
                self._by_path[entry.path] = entry.handle
        if moved:
            logger.debug("Renamed %d watches: %s -> %s", len(moved), old_path, new_path)
        return len(moved)

    def lookup(self, handle: int) -> TrackedPath:
        """Get the entry for a handle.

        Raises:
            WatchNotFound: The handle was removed (benign race with events).
        """
        with self._lock:
            entry = self._entries.get(handle)
        if entry is None:
            raise WatchNotFound(handle)
        return entry

    def find(self, path: str) -> TrackedPath | None:
        """Get the entry watching exactly this path, if any."""
        with self._lock:
            handle = self._by_path.get(path)
            return self._entries.get(handle) if handle is not None else None

    def update_cursors(self, handle: int, source_cursor: int, destination_cursor: int) -> None:
        """Record how far a file has been replicated. Unknown handles are ignored."""
        with self._lock:
            entry = self._entries.get(handle)
            if entry is not None:
                entry.source_cursor = source_cursor
                entry.destination_cursor = destination_cursor

    def paths(self) -> list[str]:
        """Get all watched paths, sorted."""
        with self._lock:
            return sorted(self._by_path)

    def _drop_path_index(self, entry: TrackedPath) -> None:
        """Remove the path index for an entry if it still points at it."""
        if self._by_path.get(entry.path) == entry.handle:
            del self._by_path[entry.path]
