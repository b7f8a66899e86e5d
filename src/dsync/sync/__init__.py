"""Change dispatching, replication gating and supervision.

Architecture:
    Notifier → EventStream → WatchWorker → Dispatcher → SyncCoordinator → Replicator

Components:
- **SyncCoordinator**: Initialization barrier + one-at-a-time replication gate
- **Dispatcher**: Maps decoded changes to watch updates and replication
- **WatchWorker**: Thread consuming one event stream
- **Supervisor**: Fail-fast health monitoring of workers and watch capacity
- **MirrorEngine**: Wires everything for one source -> destination mirror
"""

from dsync.sync.coordinator import CoordinatorStats, SyncCoordinator
from dsync.sync.dispatcher import Dispatcher
from dsync.sync.engine import MirrorEngine
from dsync.sync.supervisor import Supervisor, WatchWorker, WorkerState

__all__ = [
    "CoordinatorStats",
    "Dispatcher",
    "MirrorEngine",
    "Supervisor",
    "SyncCoordinator",
    "WatchWorker",
    "WorkerState",
]
