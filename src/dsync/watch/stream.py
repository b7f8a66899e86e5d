"""Inotify event stream decoding.

This module provides:
- RawRecord: One inotify_event record as read from the kernel
- iter_records: Cursor over the records of a buffer
- decode_buffer: Records -> normalized Change values with rename pairing
- EventStream: Blocking buffer reads from an event source

Record layout (struct inotify_event):

    int wd | uint32 mask | uint32 cookie | uint32 len | char name[len]

`name` is NUL padded and `len` may be zero, so records are walked using each
header's declared length; a buffer may hold any number of records but the
kernel never splits a record across two reads.

Rename pairing: a MOVED_FROM with a non-zero cookie immediately followed by a
MOVED_TO with the same cookie becomes a single RENAMED change. Unpaired halves
are emitted as MOVED_AWAY / MOVED_IN. A record whose non-zero cookie equals
the cookie of the record right before it is a duplicate delivery and is
dropped; duplicates that are not adjacent are delivered.
"""

from __future__ import annotations

import logging
import os
import struct
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Protocol

from watchdog.observers.inotify_c import InotifyConstants

from dsync.core.types import (
    Change,
    ChangeKind,
    EventStreamError,
    QueueOverflowError,
    TruncatedRecordError,
)

logger = logging.getLogger(__name__)

HEADER = struct.Struct("iIII")

# Checked in order; the first matching flag decides the kind
_KIND_FLAGS: tuple[tuple[int, ChangeKind], ...] = (
    (InotifyConstants.IN_CREATE, ChangeKind.CREATED),
    (InotifyConstants.IN_DELETE, ChangeKind.DELETED),
    (InotifyConstants.IN_MODIFY, ChangeKind.MODIFIED_CONTENT),
    (InotifyConstants.IN_ATTRIB, ChangeKind.MODIFIED_METADATA),
    (InotifyConstants.IN_MOVED_FROM, ChangeKind.MOVED_AWAY),
    (InotifyConstants.IN_MOVED_TO, ChangeKind.MOVED_IN),
    (InotifyConstants.IN_DELETE_SELF, ChangeKind.DELETED),
    (InotifyConstants.IN_MOVE_SELF, ChangeKind.MOVED_AWAY),
)


@dataclass(frozen=True)
class RawRecord:
    """One undecoded inotify record."""

    wd: int
    mask: int
    cookie: int
    name: str

    @property
    def is_directory(self) -> bool:
        return bool(self.mask & InotifyConstants.IN_ISDIR)


def iter_records(buffer: bytes) -> Iterator[RawRecord]:
    """Walk a buffer record by record.

    Raises:
        TruncatedRecordError: If a header or name runs past the buffer end.
    """
    view = memoryview(buffer)
    end = len(buffer)
    offset = 0
    while offset < end:
        if end - offset < HEADER.size:
            raise TruncatedRecordError(
                f"Truncated record header at offset {offset} ({end - offset} bytes left)"
            )
        wd, mask, cookie, length = HEADER.unpack_from(buffer, offset)
        offset += HEADER.size
        if length > end - offset:
            raise TruncatedRecordError(
                f"Record name of {length} bytes at offset {offset} overruns buffer "
                f"({end - offset} bytes left)"
            )
        name = bytes(view[offset : offset + length]).split(b"\0", 1)[0]
        offset += length
        yield RawRecord(wd=wd, mask=mask, cookie=cookie, name=os.fsdecode(name))


def _kind_of(mask: int) -> ChangeKind | None:
    """Map a record mask to a change kind, None for uninteresting records.

    Raises:
        QueueOverflowError: The kernel dropped events.
    """
    if mask & InotifyConstants.IN_Q_OVERFLOW:
        raise QueueOverflowError("Inotify event queue overflowed, changes were lost")
    if mask & InotifyConstants.IN_IGNORED:
        return ChangeKind.IGNORED
    for flag, kind in _KIND_FLAGS:
        if mask & flag:
            return kind
    return None


def _paired_record(away: RawRecord, following: RawRecord | None) -> RawRecord | None:
    """Return following if it is the MOVED_TO half of the MOVED_FROM away."""
    if following is None or away.cookie == 0 or following.cookie != away.cookie:
        return None
    if not following.mask & InotifyConstants.IN_MOVED_TO:
        return None
    return following


def decode_buffer(buffer: bytes) -> Iterator[Change]:
    """Decode one read() buffer into changes, in kernel delivery order.

    The returned iterator is lazy and can only be consumed once.

    Raises:
        TruncatedRecordError: On a malformed buffer.
        QueueOverflowError: If the buffer reports a queue overflow.
    """
    records = iter_records(buffer)
    previous_cookie = 0
    record = next(records, None)

    while record is not None:
        following = next(records, None)

        if record.cookie and record.cookie == previous_cookie:
            logger.debug("Dropping duplicate record for cookie %d: %r", record.cookie, record)
            record = following
            continue
        previous_cookie = record.cookie

        kind = _kind_of(record.mask)
        if kind is None:
            record = following
            continue

        arrived = _paired_record(record, following) if kind == ChangeKind.MOVED_AWAY else None
        if arrived is not None:
            yield Change(
                subject_handle=record.wd,
                name=record.name,
                is_directory=record.is_directory,
                kind=ChangeKind.RENAMED,
                cookie=record.cookie,
                target_handle=arrived.wd,
                target_name=arrived.name,
            )
            # Both halves consumed; previous_cookie already equals theirs
            record = next(records, None)
            continue

        yield Change(
            subject_handle=record.wd,
            name=record.name,
            is_directory=record.is_directory,
            kind=kind,
            cookie=record.cookie,
        )
        record = following


class EventSource(Protocol):
    """Anything that returns raw inotify buffers (a Notifier)."""

    def read(self) -> bytes:
        """Block until a buffer is available; b"" once the source is closed."""
        ...


class EventStream:
    """Blocking reader over an event source.

    Usage:
        stream = EventStream(notifier)
        for change in stream.changes():
            dispatcher.dispatch(change)
    """

    def __init__(self, source: EventSource) -> None:
        self._source = source

    def read(self) -> bytes:
        """Read one buffer, blocking.

        Raises:
            EventStreamError: If the source cannot be read.
        """
        try:
            return self._source.read()
        except OSError as e:
            raise EventStreamError(f"Error reading notifier: {e}") from e

    def __iter__(self) -> Iterator[bytes]:
        """Yield buffers until the source is closed."""
        while True:
            buffer = self.read()
            if not buffer:
                return
            yield buffer

    def changes(self) -> Iterator[Change]:
        """Yield decoded changes until the source is closed."""
        for buffer in self:
            yield from decode_buffer(buffer)
