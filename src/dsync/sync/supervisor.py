"""Worker threads and fail-fast supervision.

This module provides:
- WorkerState: Lifecycle of a watch worker
- WatchWorker: Thread consuming one event stream
- Supervisor: Starts workers and waits for a fatal condition

Workers report on a shared health channel when they end, for any reason.
The supervisor treats any ended worker, and an exhausted watch table, as
fatal: a watcher that silently stopped means silently missed changes.
"""

from __future__ import annotations

import logging
import queue
import threading
from enum import Enum, auto
from typing import TYPE_CHECKING

from dsync.core.types import DsyncError, WorkerReport

if TYPE_CHECKING:
    from dsync.sync.coordinator import SyncCoordinator
    from dsync.sync.dispatcher import Dispatcher
    from dsync.watch.stream import EventStream
    from dsync.watch.table import WatchTable

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """State of a watch worker."""

    IDLE = auto()
    WAITING = auto()  # Blocked on the initialization barrier
    RUNNING = auto()
    STOPPED = auto()
    FAILED = auto()


class WatchWorker:
    """Reads one event stream and dispatches its changes, in order.

    Usage:
        worker = WatchWorker("watcher", stream, dispatcher, coordinator, health)
        worker.start()
    """

    def __init__(
        self,
        name: str,
        stream: EventStream,
        dispatcher: Dispatcher,
        coordinator: SyncCoordinator,
        health: queue.Queue[WorkerReport],
        init_timeout: float | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            name: Thread name, used in logs and reports.
            stream: Event stream to consume.
            dispatcher: Applies each change.
            coordinator: Provides the initialization barrier.
            health: Channel receiving a WorkerReport when the worker ends.
            init_timeout: Seconds to wait for the initialization barrier,
                None to wait forever.
        """
        self.name = name
        self._stream = stream
        self._dispatcher = dispatcher
        self._coordinator = coordinator
        self._health = health
        self._init_timeout = init_timeout
        self._state = WorkerState.IDLE
        self._thread: threading.Thread | None = None
        self._processed = 0

    @property
    def state(self) -> WorkerState:
        """Get current worker state."""
        return self._state

    @property
    def processed(self) -> int:
        """Number of changes dispatched so far."""
        return self._processed

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread."""
        if self._thread is not None:
            logger.warning("Worker %s already started", self.name)
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.debug("Worker %s started", self.name)

    def join(self, timeout: float | None = None) -> None:
        """Wait for the worker thread to end."""
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def _run(self) -> None:
        error: BaseException | None = None
        try:
            self._state = WorkerState.WAITING
            if not self._coordinator.wait_for_initialization(self._init_timeout):
                raise DsyncError(
                    f"Initialization not finished after {self._init_timeout}s"
                )
            self._state = WorkerState.RUNNING
            for change in self._stream.changes():
                self._dispatcher.dispatch(change)
                self._processed += 1
        except Exception as e:
            error = e
            self._state = WorkerState.FAILED
            logger.exception("Worker %s died: %s", self.name, e)
        else:
            self._state = WorkerState.STOPPED
            logger.info("Worker %s stopped: event source closed", self.name)
        finally:
            self._health.put(WorkerReport(worker_name=self.name, error=error))


class Supervisor:
    """Owns the workers and decides when the process must stop.

    Usage:
        supervisor = Supervisor(table, poll_interval=1.0)
        supervisor.add_worker(WatchWorker(..., health=supervisor.health))
        supervisor.start()
        reason = supervisor.run()  # blocks until something fatal happens
    """

    def __init__(self, table: WatchTable, poll_interval: float = 1.0) -> None:
        """Initialize the supervisor.

        Args:
            table: Watch table whose exhaustion is fatal.
            poll_interval: Seconds between checks of the watch table.
        """
        self._table = table
        self._poll_interval = poll_interval
        self._health: queue.Queue[WorkerReport] = queue.Queue()
        self._workers: list[WatchWorker] = []

    @property
    def health(self) -> queue.Queue[WorkerReport]:
        """Channel workers report on when they end."""
        return self._health

    @property
    def workers(self) -> list[WatchWorker]:
        return list(self._workers)

    def add_worker(self, worker: WatchWorker) -> None:
        """Register a worker to be started and supervised."""
        self._workers.append(worker)

    def start(self) -> None:
        """Start every registered worker."""
        for worker in self._workers:
            worker.start()

    def check(self, timeout: float = 0.0) -> str | None:
        """Wait up to timeout seconds for a fatal condition.

        Returns:
            A one-line description of the fatal condition, or None.
        """
        if self._table.exhausted:
            return f"Out of inotify watches (limit {self._table.capacity})"
        try:
            report = self._health.get(timeout=timeout) if timeout > 0 else self._health.get_nowait()
        except queue.Empty:
            if self._table.exhausted:
                return f"Out of inotify watches (limit {self._table.capacity})"
            return None
        if report.failed:
            return f"Worker {report.worker_name} died: {report.error}"
        return f"Worker {report.worker_name} stopped"

    def run(self) -> str:
        """Block until a fatal condition occurs.

        Returns:
            A one-line description of why the process must exit.
        """
        while True:
            reason = self.check(timeout=self._poll_interval)
            if reason is not None:
                logger.error("Fatal: %s", reason)
                return reason

    def join(self, timeout: float | None = None) -> None:
        """Wait for all workers to end."""
        for worker in self._workers:
            worker.join(timeout=timeout)
