"""Change dispatching.

This module provides:
- Dispatcher: Maps each decoded Change to watch-table updates and
  replication actions

Decision table:
    | Change            | Directory | Action                                         |
    |-------------------|-----------|------------------------------------------------|
    | CREATED / MOVED_IN| yes       | Watch + walk subtree, sync directory           |
    | CREATED / MOVED_IN| no        | Watch file, sync file (fresh)                  |
    | DELETED           | any       | Remove from destination, drop watches          |
    | MODIFIED_CONTENT  | no        | Re-stat, sync file (append) if still regular   |
    | MODIFIED_METADATA | any       | Log only                                       |
    | RENAMED           | any       | Rename in destination, re-path watches, resync |
    | MOVED_AWAY        | any       | Remove from destination, drop watches          |
    | IGNORED           | -         | Forget the handle                              |

Every replication action runs through the coordinator's sync gate.
Per-path problems (vanished files, refused watches, failed copies) are
logged and the change is dropped; only watch exhaustion and loss of the
source root propagate.
"""

from __future__ import annotations

import logging
import os
import stat
from typing import TYPE_CHECKING

from dsync.core.types import (
    Change,
    ChangeKind,
    ReplicationMode,
    SourceRootLost,
    WalkError,
    WatchInstallError,
    WatchNotFound,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from dsync.replication.base import Replicator
    from dsync.sync.coordinator import SyncCoordinator
    from dsync.watch.table import WatchTable
    from dsync.watch.walker import TreeWalker

logger = logging.getLogger(__name__)


class Dispatcher:
    """Applies changes to the watch table and the destination tree.

    Usage:
        dispatcher = Dispatcher(source, table, walker, coordinator, replicator)
        for change in stream.changes():
            dispatcher.dispatch(change)
    """

    def __init__(
        self,
        source: str,
        table: WatchTable,
        walker: TreeWalker,
        coordinator: SyncCoordinator,
        replicator: Replicator,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            source: Source root directory (already normalized).
            table: Watch table shared with the walker.
            walker: Installs watches on new subtrees.
            coordinator: Serializes replication actions.
            replicator: Applies changes to the destination.
        """
        self._source = source
        self._table = table
        self._walker = walker
        self._coordinator = coordinator
        self._replicator = replicator
        self._handlers: dict[ChangeKind, Callable[[Change], None]] = {
            ChangeKind.CREATED: self._on_created,
            ChangeKind.MOVED_IN: self._on_created,
            ChangeKind.DELETED: self._on_removed,
            ChangeKind.MOVED_AWAY: self._on_removed,
            ChangeKind.MODIFIED_CONTENT: self._on_modified_content,
            ChangeKind.MODIFIED_METADATA: self._on_modified_metadata,
            ChangeKind.RENAMED: self._on_renamed,
            ChangeKind.IGNORED: self._on_ignored,
        }

    def dispatch(self, change: Change) -> None:
        """Handle one change.

        Raises:
            WatchCapacityExceeded: The watch table is full (fatal).
            SourceRootLost: The source root was deleted or moved (fatal).
        """
        logger.debug("Dispatching %r", change)
        try:
            self._handlers[change.kind](change)
        except WatchNotFound as e:
            # Event raced with the removal of its watch
            logger.debug("Dropping %r: %s", change, e)

    # =========================================================================
    # Handlers
    # =========================================================================

    def _on_created(self, change: Change) -> None:
        if change.is_self_event:
            return
        path = self._resolve(change.subject_handle, change.name)
        self._add_path(path, change.is_directory)

    def _on_removed(self, change: Change) -> None:
        if change.is_self_event:
            self._check_self_event(change)
            return
        path = self._resolve(change.subject_handle, change.name)
        relative = self._relative(path)
        if change.kind == ChangeKind.DELETED:
            logger.info("%s %s deleted", "Directory" if change.is_directory else "File", relative)
        else:
            logger.info("%s moved out of the tree", relative)

        self._coordinator.run(
            f"remove {relative}",
            self._replicator.remove_destination_path,
            relative,
            change.is_directory,
        )
        self._table.remove_tree(path)

    def _on_modified_content(self, change: Change) -> None:
        if change.is_directory:
            return
        path = self._resolve(change.subject_handle, change.name)
        st = self._regular_file_stat(path)
        if st is None:
            return

        entry = self._table.find(path)
        mode = ReplicationMode.APPEND
        if entry is not None and st.st_size < entry.destination_cursor:
            # Truncated or rewritten: appending would keep stale bytes
            mode = ReplicationMode.FRESH
        self._sync_file(path, mode, st.st_size)

    def _on_modified_metadata(self, change: Change) -> None:
        path = self._resolve(change.subject_handle, change.name)
        try:
            mode = os.lstat(path).st_mode
        except OSError as e:
            logger.debug("Metadata change on vanished path %s: %s", path, e)
            return
        if stat.S_ISREG(mode) or stat.S_ISDIR(mode):
            logger.info("Metadata changed: %s", self._relative(path))
        else:
            logger.debug("Metadata change on special file %s, dropped", path)

    def _on_renamed(self, change: Change) -> None:
        old_path = self._try_resolve(change.subject_handle, change.name)
        new_path = None
        if change.target_handle is not None and change.target_name is not None:
            new_path = self._try_resolve(change.target_handle, change.target_name)

        if old_path is None:
            if new_path is None:
                logger.debug("Dropping %r: neither side is watched", change)
            else:
                self._add_path(new_path, change.is_directory)
            return
        if new_path is None:
            self._on_removed(
                Change(
                    subject_handle=change.subject_handle,
                    name=change.name,
                    is_directory=change.is_directory,
                    kind=ChangeKind.MOVED_AWAY,
                    cookie=change.cookie,
                )
            )
            return

        old_relative = self._relative(old_path)
        new_relative = self._relative(new_path)
        logger.info("Renamed %s -> %s", old_relative, new_relative)
        self._coordinator.run(
            f"rename {old_relative} -> {new_relative}",
            self._replicator.rename_destination_path,
            old_relative,
            new_relative,
        )
        self._table.rename_tree(old_path, new_path)

        # Catch content written around the rename
        if change.is_directory:
            if self._table.find(new_path) is None and not self._watch_directory(new_path):
                return
            self._coordinator.run(
                f"directory {new_relative}",
                self._replicator.replicate_directory,
                new_relative,
            )
        else:
            st = self._regular_file_stat(new_path)
            if st is not None:
                self._sync_file(new_path, ReplicationMode.FRESH, st.st_size)

    def _on_ignored(self, change: Change) -> None:
        self._table.forget(change.subject_handle)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _add_path(self, path: str, is_directory: bool) -> None:
        """Watch and replicate a path that appeared in the tree."""
        relative = self._relative(path)
        try:
            st = os.lstat(path)
        except OSError as e:
            logger.debug("New path %s vanished before handling: %s", path, e)
            return
        mode = st.st_mode

        if is_directory or stat.S_ISDIR(mode):
            if not stat.S_ISDIR(mode):
                logger.debug("Skipping %s: no longer a directory", path)
                return
            logger.info("New directory %s created", relative)
            if not self._watch_directory(path):
                return
            self._coordinator.run(
                f"directory {relative}",
                self._replicator.replicate_directory,
                relative,
            )
            return

        if not stat.S_ISREG(mode):
            logger.debug("Skipping special file: %s", path)
            return

        logger.info("New file %s created", relative)
        try:
            self._table.install(path, is_directory=False)
        except WatchInstallError as e:
            logger.warning("%s, not replicating", e)
            return
        self._sync_file(path, ReplicationMode.FRESH, st.st_size)

    def _watch_directory(self, path: str) -> bool:
        """Watch a directory and everything below it; False if skipped."""
        try:
            self._table.install(path, is_directory=True)
        except WatchInstallError as e:
            logger.warning("Error watching new directory: %s", e)
            return False
        try:
            self._walker.walk(path)
        except WalkError as e:
            logger.warning("%s, skipping subtree", e)
            self._table.remove_tree(path)
            return False
        return True

    def _sync_file(self, path: str, mode: ReplicationMode, size: int) -> None:
        """Replicate one file and advance its cursors on success."""
        relative = self._relative(path)
        ok = self._coordinator.run(
            f"file {relative} ({mode.value})",
            self._replicator.replicate_file,
            relative,
            mode,
        )
        if ok:
            entry = self._table.find(path)
            if entry is not None:
                self._table.update_cursors(entry.handle, size, size)

    def _check_self_event(self, change: Change) -> None:
        """Self-events only matter for the source root itself."""
        entry = self._table.lookup(change.subject_handle)
        if entry.path == self._source:
            raise SourceRootLost(f"Source directory {self._source} was deleted or moved")
        logger.debug("Self event %s on %s, handled by its parent", change.kind.name, entry.path)

    def _regular_file_stat(self, path: str) -> os.stat_result | None:
        """lstat a path, None unless it is still a regular file."""
        try:
            st = os.lstat(path)
        except OSError as e:
            logger.debug("Error trying to stat %s: %s", path, e)
            return None
        if not stat.S_ISREG(st.st_mode):
            logger.debug("Dropping change for %s: no longer a regular file", path)
            return None
        return st

    def _resolve(self, handle: int, name: str) -> str:
        """Absolute path for a name inside a watched path."""
        entry = self._table.lookup(handle)
        return os.path.join(entry.path, name) if name else entry.path

    def _try_resolve(self, handle: int, name: str) -> str | None:
        try:
            return self._resolve(handle, name)
        except WatchNotFound:
            return None

    def _relative(self, path: str) -> str:
        """Path relative to the source root ("" for the root)."""
        relative = os.path.relpath(path, self._source)
        return "" if relative == os.curdir else relative
