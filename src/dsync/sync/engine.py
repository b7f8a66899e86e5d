"""Mirror engine assembly.

This module provides:
- MirrorEngine: One explicitly constructed engine per mirror, wiring the
  notifier, watch table, walker, coordinator, dispatcher and supervisor

Startup order:
1. Read the kernel watch limit (fatal if unreadable)
2. Hold the initialization barrier
3. Start the worker (it blocks on the barrier)
4. Watch the source root and walk the existing tree
5. Run the initial full sync
6. Release the barrier; live events flow from here on
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from dsync.core.config import read_max_user_watches
from dsync.core.types import ReplicationError, WalkError, WatchInstallError
from dsync.replication.rsync import RsyncReplicator
from dsync.sync.coordinator import SyncCoordinator
from dsync.sync.dispatcher import Dispatcher
from dsync.sync.supervisor import Supervisor, WatchWorker
from dsync.watch.inotify import Notifier
from dsync.watch.stream import EventStream
from dsync.watch.table import WatchTable
from dsync.watch.walker import TreeWalker

if TYPE_CHECKING:
    from dsync.core.config import MirrorConfig
    from dsync.replication.base import Replicator

logger = logging.getLogger(__name__)

# Seconds to wait for workers when stopping
STOP_TIMEOUT = 5.0


class NotifierProtocol(Protocol):
    """What the engine needs from a notification source."""

    def add_watch(self, path: str, mask: int) -> int: ...

    def rm_watch(self, wd: int) -> None: ...

    def read(self) -> bytes: ...

    def close(self) -> None: ...


class MirrorEngine:
    """A running source -> destination mirror.

    Usage:
        engine = MirrorEngine(config)
        engine.start()
        reason = engine.supervisor.run()
        engine.stop()
    """

    def __init__(
        self,
        config: MirrorConfig,
        replicator: Replicator | None = None,
        notifier: NotifierProtocol | None = None,
        capacity: int | None = None,
    ) -> None:
        """Build the engine.

        Args:
            config: Mirror settings.
            replicator: Defaults to an RsyncReplicator built from config.
            notifier: Defaults to a new inotify instance.
            capacity: Watch limit; defaults to the kernel's max_user_watches.

        Raises:
            ConfigError: If the watch limit cannot be read.
            OSError: If the inotify instance cannot be created.
        """
        self.config = config
        self.capacity = capacity if capacity is not None else read_max_user_watches(
            config.max_watches_path
        )
        self.notifier: NotifierProtocol = notifier or Notifier(config.buffer_size)
        self.replicator: Replicator = replicator or RsyncReplicator.from_config(config)

        self.table = WatchTable(self.notifier, self.capacity)
        self.walker = TreeWalker(self.table)
        self.coordinator = SyncCoordinator()
        self.dispatcher = Dispatcher(
            config.source,
            self.table,
            self.walker,
            self.coordinator,
            self.replicator,
        )
        self.supervisor = Supervisor(self.table, config.poll_interval)
        self.supervisor.add_worker(
            WatchWorker(
                "dsync-watcher",
                EventStream(self.notifier),
                self.dispatcher,
                self.coordinator,
                self.supervisor.health,
            )
        )
        self._started = False

    def start(self) -> None:
        """Watch the source tree, run the initial sync and start workers.

        Raises:
            WalkError: The source root cannot be watched or listed.
            WatchCapacityExceeded: The tree needs more watches than allowed.
            ReplicationError: The initial sync failed.
        """
        logger.info("max_user_watches: %d", self.capacity)
        self.coordinator.hold_initialization()
        try:
            self.supervisor.start()
            self._started = True
            self._watch_source_tree()
            if self.config.initial_sync and not self.coordinator.run(
                "initial sync", self.replicator.initial_sync
            ):
                raise ReplicationError("Error performing initial sync!")
        except Exception:
            # Close first so the released worker sees a closed source
            self.notifier.close()
            self.coordinator.release_initialization()
            self.stop()
            raise
        self.coordinator.release_initialization()

    def run(self) -> str:
        """Start and block until a fatal condition.

        Returns:
            Why the engine must stop.
        """
        self.start()
        return self.supervisor.run()

    def stop(self) -> None:
        """Close the notifier and wait for workers to finish."""
        self.notifier.close()
        if self._started:
            self.supervisor.join(timeout=STOP_TIMEOUT)

    def _watch_source_tree(self) -> None:
        source = self.config.source
        try:
            self.table.install(source, is_directory=True)
        except WatchInstallError as e:
            raise WalkError(str(e)) from e
        installed = 1 + self.walker.walk(source)
        logger.info("Watching %d paths under %s", installed, source)
