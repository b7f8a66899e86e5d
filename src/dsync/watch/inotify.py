"""Inotify file descriptor wrapper.

This module provides:
- Notifier: Owns one inotify instance (add/remove watches, blocking reads)
- DIRECTORY_EVENT_MASK / FILE_EVENT_MASK: What each kind of watch reports

The ctypes bindings come from watchdog's inotify backend; this class only
adds the read loop and a wake-up pipe so a blocked reader can be released
on shutdown.
"""

from __future__ import annotations

import ctypes
import errno
import logging
import os
import select
import threading

from watchdog.observers.inotify_c import (
    DEFAULT_EVENT_BUFFER_SIZE,
    InotifyConstants,
    inotify_add_watch,
    inotify_init,
    inotify_rm_watch,
)

logger = logging.getLogger(__name__)

# Directory watches report structural changes to their children
DIRECTORY_EVENT_MASK = (
    InotifyConstants.IN_ATTRIB
    | InotifyConstants.IN_CREATE
    | InotifyConstants.IN_DELETE
    | InotifyConstants.IN_DELETE_SELF
    | InotifyConstants.IN_MOVE_SELF
    | InotifyConstants.IN_MOVED_FROM
    | InotifyConstants.IN_MOVED_TO
    | InotifyConstants.IN_ONLYDIR
    | InotifyConstants.IN_DONT_FOLLOW
)

# File watches only report content changes; the parent directory reports the rest
FILE_EVENT_MASK = InotifyConstants.IN_MODIFY | InotifyConstants.IN_DONT_FOLLOW


def _os_error(filename: str | None = None) -> OSError:
    """Build an OSError from the errno left by the last ctypes call."""
    err = ctypes.get_errno()
    return OSError(err, os.strerror(err), filename)


class Notifier:
    """One inotify instance.

    Usage:
        notifier = Notifier()
        wd = notifier.add_watch("/srv/data", DIRECTORY_EVENT_MASK)
        buffer = notifier.read()  # blocks
        notifier.close()  # releases a blocked read() with b""
    """

    def __init__(self, buffer_size: int = DEFAULT_EVENT_BUFFER_SIZE) -> None:
        """Create the inotify instance.

        Args:
            buffer_size: Maximum number of bytes returned by one read().

        Raises:
            OSError: If the kernel refuses a new inotify instance.
        """
        fd = inotify_init()
        if fd == -1:
            raise _os_error()
        self._fd = fd
        self._buffer_size = buffer_size
        self._kill_r, self._kill_w = os.pipe()
        self._closed = False
        self._readers = 0
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        """Whether close() has been called."""
        return self._closed

    def fileno(self) -> int:
        """Return the inotify file descriptor."""
        return self._fd

    def add_watch(self, path: str, mask: int) -> int:
        """Watch a path.

        Returns:
            The watch descriptor. Watching an already watched inode returns
            its existing descriptor.

        Raises:
            OSError: With the kernel errno (ENOENT, EACCES, ENOSPC...), or
                EBADF once the instance is closed.
        """
        if self._closed:
            raise OSError(errno.EBADF, "Inotify instance is closed", path)
        wd = inotify_add_watch(self._fd, os.fsencode(path), mask)
        if wd == -1:
            raise _os_error(path)
        return wd

    def rm_watch(self, wd: int) -> None:
        """Stop watching a descriptor.

        Raises:
            OSError: EINVAL if the kernel already dropped the watch, EBADF
                once the instance is closed.
        """
        if self._closed:
            raise OSError(errno.EBADF, "Inotify instance is closed")
        if inotify_rm_watch(self._fd, wd) == -1:
            raise _os_error()

    def read(self) -> bytes:
        """Block until events are available and return the raw buffer.

        Returns:
            One buffer of back-to-back inotify records, or b"" once the
            notifier has been closed.

        Raises:
            OSError: If reading the inotify descriptor fails.
        """
        with self._lock:
            if self._closed:
                return b""
            self._readers += 1

        try:
            poller = select.poll()
            poller.register(self._fd, select.POLLIN)
            poller.register(self._kill_r, select.POLLIN)

            while True:
                if self._closed:
                    return b""
                try:
                    ready = {fd for fd, _ in poller.poll()}
                except InterruptedError:
                    continue
                if self._kill_r in ready or self._closed:
                    return b""
                try:
                    return os.read(self._fd, self._buffer_size)
                except OSError as e:
                    if e.errno == errno.EINTR:
                        continue
                    if self._closed:
                        return b""
                    raise
        finally:
            with self._lock:
                self._readers -= 1
                if self._closed and self._readers == 0:
                    self._release_descriptors()

    def close(self) -> None:
        """Close the instance and wake up any blocked reader.

        With a reader still inside read(), the descriptors are released by
        that reader on its way out, so its poll() never sees a recycled fd.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            logger.debug("Closing inotify instance %d", self._fd)
            os.write(self._kill_w, b"\0")
            if self._readers == 0:
                self._release_descriptors()

    def _release_descriptors(self) -> None:
        """Close the inotify fd and the wake-up pipe. Called under the lock."""
        if self._fd != -1:
            os.close(self._fd)
            self._fd = -1
        if self._kill_r != -1:
            os.close(self._kill_r)
            os.close(self._kill_w)
            self._kill_r = self._kill_w = -1

    def __enter__(self) -> Notifier:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
