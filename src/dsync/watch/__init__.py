"""Watch management and inotify event decoding.

Components:
- **Notifier**: One inotify instance (ctypes bindings from watchdog)
- **WatchTable**: Bounded handle -> path table with capacity accounting
- **TreeWalker**: Installs watches over an existing directory tree
- **EventStream / decode_buffer**: Raw buffers -> normalized Change values
"""

from dsync.watch.inotify import DIRECTORY_EVENT_MASK, FILE_EVENT_MASK, Notifier
from dsync.watch.stream import EventSource, EventStream, RawRecord, decode_buffer, iter_records
from dsync.watch.table import WatchBackend, WatchTable
from dsync.watch.walker import TreeWalker

__all__ = [
    "DIRECTORY_EVENT_MASK",
    "FILE_EVENT_MASK",
    "EventSource",
    "EventStream",
    "Notifier",
    "RawRecord",
    "TreeWalker",
    "WatchBackend",
    "WatchTable",
    "decode_buffer",
    "iter_records",
]
