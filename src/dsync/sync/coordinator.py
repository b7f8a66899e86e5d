"""Serialization of replication actions.

This module provides:
- SyncCoordinator: Initialization barrier and replication gate
- CoordinatorStats: Counters for replication outcomes

Two capacity-one gates:

1. ``init_barrier`` is held by the main thread for the whole initial tree
   walk (and initial sync). Workers pass through it (acquire, then release
   immediately) before handling their first live event, so no live event is
   processed before the static tree is fully watched.
2. ``sync_gate`` is held around every call into the replicator, including
   the subprocess it runs. All replication is therefore strictly ordered;
   a hung copy stalls every later one.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class CoordinatorStats:
    """Statistics for the coordinator."""

    actions_started: int = 0
    actions_succeeded: int = 0
    actions_failed: int = 0


class SyncCoordinator:
    """Initialization barrier plus mutual exclusion for replication.

    Usage:
        coordinator = SyncCoordinator()
        coordinator.hold_initialization()
        ...  # install watches
        coordinator.release_initialization()

        # In each worker
        coordinator.wait_for_initialization()
        coordinator.run("sync a.txt", replicator.replicate_file, "a.txt", mode)
    """

    def __init__(self) -> None:
        self._init_barrier = threading.BoundedSemaphore(1)
        self._sync_gate = threading.BoundedSemaphore(1)
        self._stats_lock = threading.Lock()
        self._stats = CoordinatorStats()
        self._active: str | None = None

    @property
    def stats(self) -> CoordinatorStats:
        """Get a snapshot of replication statistics."""
        with self._stats_lock:
            return CoordinatorStats(**vars(self._stats))

    @property
    def active_action(self) -> str | None:
        """Description of the replication action holding the gate, if any."""
        return self._active

    def hold_initialization(self) -> None:
        """Close the barrier; called once before the initial tree walk."""
        self._init_barrier.acquire()
        logger.debug("Initialization barrier held")

    def release_initialization(self) -> None:
        """Open the barrier once the tree is fully watched."""
        self._init_barrier.release()
        logger.debug("Initialization barrier released")

    def wait_for_initialization(self, timeout: float | None = None) -> bool:
        """Block until the barrier is open.

        Args:
            timeout: Maximum seconds to wait, None to wait forever.

        Returns:
            True once initialization is complete, False on timeout.
        """
        acquired = self._init_barrier.acquire(timeout=timeout)
        if acquired:
            self._init_barrier.release()
        return acquired

    @contextmanager
    def replicating(self, description: str) -> Iterator[None]:
        """Hold the replication gate for the duration of the block."""
        self._sync_gate.acquire()
        self._active = description
        try:
            yield
        finally:
            self._active = None
            self._sync_gate.release()

    def run(self, description: str, action: Callable[..., bool], *args: object) -> bool:
        """Run one replicator call inside the gate.

        Failures are logged and counted, never raised: the next change to the
        same path replicates it again.

        Args:
            description: Human-readable action for logs.
            action: Replicator method returning True on success.
            *args: Arguments for the action.

        Returns:
            Whether the action succeeded.
        """
        with self._stats_lock:
            self._stats.actions_started += 1

        with self.replicating(description):
            logger.info("Sync: %s", description)
            start = time.monotonic()
            try:
                ok = bool(action(*args))
            except Exception as e:
                logger.exception("Sync %s raised: %s", description, e)
                ok = False
            elapsed = time.monotonic() - start

        with self._stats_lock:
            if ok:
                self._stats.actions_succeeded += 1
            else:
                self._stats.actions_failed += 1

        if ok:
            logger.debug("Sync %s done in %.2fs", description, elapsed)
        else:
            logger.warning("Sync %s failed after %.2fs", description, elapsed)
        return ok
