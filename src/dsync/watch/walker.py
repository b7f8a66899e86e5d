"""Recursive watch installation for existing directory trees."""

from __future__ import annotations

import logging
import os
import stat

from dsync.core.types import WalkError, WatchInstallError
from dsync.watch.table import WatchTable

logger = logging.getLogger(__name__)


def _is_special(mode: int) -> bool:
    """Symlinks, devices, FIFOs and sockets are never watched or replicated."""
    return (
        stat.S_ISLNK(mode)
        or stat.S_ISCHR(mode)
        or stat.S_ISBLK(mode)
        or stat.S_ISFIFO(mode)
        or stat.S_ISSOCK(mode)
    )


class TreeWalker:
    """Installs watches on everything below a directory.

    Each child is classified with lstat():
    - regular file: file watch
    - directory: directory watch, then depth-first recursion
    - symlink/device/FIFO/socket: skipped
    - anything else: skipped with a warning

    A failure on one child skips that child (and its subtree) only; siblings
    are still visited. WatchCapacityExceeded is never caught here.
    """

    def __init__(self, table: WatchTable) -> None:
        self._table = table

    def walk(self, path: str) -> int:
        """Watch every entry below path. path itself must already be watched.

        Args:
            path: Absolute directory path.

        Returns:
            Number of watches installed.

        Raises:
            WalkError: If path cannot be listed.
            WatchCapacityExceeded: If the watch table fills up.
        """
        try:
            with os.scandir(path) as it:
                names = sorted(entry.name for entry in it)
        except OSError as e:
            raise WalkError(f"Error opening directory: {path}: {e}") from e

        installed = 0
        for name in names:
            installed += self._visit(os.path.join(path, name))
        return installed

    def _visit(self, path: str) -> int:
        """Classify and watch one entry, returning the number of watches added."""
        try:
            mode = os.lstat(path).st_mode
        except OSError as e:
            logger.warning("Error trying to stat: %s (%s)", path, e)
            return 0

        if _is_special(mode):
            logger.debug("Skipping special file: %s", path)
            return 0

        if stat.S_ISREG(mode):
            try:
                self._table.install(path, is_directory=False)
            except WatchInstallError as e:
                logger.warning("%s, skipping", e)
                return 0
            return 1

        if stat.S_ISDIR(mode):
            try:
                self._table.install(path, is_directory=True)
            except WatchInstallError as e:
                logger.warning("%s, skipping subtree", e)
                return 0
            try:
                return 1 + self.walk(path)
            except WalkError as e:
                # Half-watched subtrees would miss changes; drop it entirely
                logger.warning("%s, skipping subtree", e)
                self._table.remove_tree(path)
                return 0

        logger.warning("Error, unknown file type: %s", path)
        return 0
