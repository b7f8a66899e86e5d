"""Core module - Shared configuration, types and errors."""

from dsync.core.config import (
    MAX_USER_WATCHES_PATH,
    MirrorConfig,
    load_config,
    read_max_user_watches,
    strip_trailing_separators,
    verify_directory,
)
from dsync.core.types import (
    Change,
    ChangeKind,
    ConfigError,
    DsyncError,
    EventStreamError,
    QueueOverflowError,
    ReplicationError,
    ReplicationMode,
    SourceRootLost,
    TrackedPath,
    TruncatedRecordError,
    WalkError,
    WatchCapacityExceeded,
    WatchError,
    WatchInstallError,
    WatchNotFound,
    WorkerReport,
)

__all__ = [
    # Config
    "MAX_USER_WATCHES_PATH",
    "MirrorConfig",
    "load_config",
    "read_max_user_watches",
    "strip_trailing_separators",
    "verify_directory",
    # Types
    "Change",
    "ChangeKind",
    "ReplicationMode",
    "TrackedPath",
    "WorkerReport",
    # Errors
    "ConfigError",
    "DsyncError",
    "EventStreamError",
    "QueueOverflowError",
    "ReplicationError",
    "SourceRootLost",
    "TruncatedRecordError",
    "WalkError",
    "WatchCapacityExceeded",
    "WatchError",
    "WatchInstallError",
    "WatchNotFound",
]
