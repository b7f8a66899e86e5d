"""Tests for event stream decoding."""

from __future__ import annotations

import errno

import pytest
from fakes import (
    IN_ACCESS,
    IN_ATTRIB,
    IN_CREATE,
    IN_DELETE,
    IN_DELETE_SELF,
    IN_IGNORED,
    IN_ISDIR,
    IN_MODIFY,
    IN_MOVE_SELF,
    IN_MOVED_FROM,
    IN_MOVED_TO,
    IN_Q_OVERFLOW,
    FailingSource,
    FakeNotifier,
    make_record,
)

from dsync.core.types import (
    Change,
    ChangeKind,
    EventStreamError,
    QueueOverflowError,
    TruncatedRecordError,
)
from dsync.watch.stream import EventStream, decode_buffer, iter_records


def decode(*records: bytes) -> list[Change]:
    return list(decode_buffer(b"".join(records)))


class TestIterRecords:
    """Tests for iter_records()."""

    def test_empty_buffer(self) -> None:
        """An empty buffer has no records."""
        assert list(iter_records(b"")) == []

    def test_name_padding_stripped(self) -> None:
        """Should strip NUL padding from names."""
        (record,) = iter_records(make_record(3, IN_CREATE, name="report.txt"))
        assert record.wd == 3
        assert record.name == "report.txt"

    def test_nameless_record(self) -> None:
        """Records with len == 0 have an empty name."""
        (record,) = iter_records(make_record(1, IN_DELETE_SELF))
        assert record.name == ""

    def test_truncated_header(self) -> None:
        """A partial header is malformed."""
        buffer = make_record(1, IN_CREATE, name="a") + b"\x01\x00\x00"
        with pytest.raises(TruncatedRecordError):
            list(iter_records(buffer))

    def test_truncated_name(self) -> None:
        """A name longer than the remaining bytes is malformed."""
        buffer = make_record(1, IN_CREATE, name="abcdef")[:-4]
        with pytest.raises(TruncatedRecordError):
            list(iter_records(buffer))


class TestDecodeBuffer:
    """Tests for decode_buffer()."""

    def test_kinds(self) -> None:
        """Should map each mask to its change kind."""
        changes = decode(
            make_record(1, IN_CREATE, name="a"),
            make_record(1, IN_DELETE, name="b"),
            make_record(2, IN_MODIFY),
            make_record(1, IN_ATTRIB, name="c"),
        )
        assert [c.kind for c in changes] == [
            ChangeKind.CREATED,
            ChangeKind.DELETED,
            ChangeKind.MODIFIED_CONTENT,
            ChangeKind.MODIFIED_METADATA,
        ]
        assert changes[2].is_self_event is True

    def test_directory_flag(self) -> None:
        """IN_ISDIR marks directory changes."""
        (change,) = decode(make_record(1, IN_CREATE | IN_ISDIR, name="sub"))
        assert change.is_directory is True
        assert change.name == "sub"

    def test_rename_pair(self) -> None:
        """Adjacent halves with the same cookie become one RENAMED change."""
        changes = decode(
            make_record(1, IN_MOVED_FROM, cookie=7, name="old"),
            make_record(1, IN_MOVED_TO, cookie=7, name="new"),
        )
        assert changes == [
            Change(
                subject_handle=1,
                name="old",
                is_directory=False,
                kind=ChangeKind.RENAMED,
                cookie=7,
                target_handle=1,
                target_name="new",
            )
        ]

    def test_rename_across_directories(self) -> None:
        """Pairs keep both handles."""
        (change,) = decode(
            make_record(1, IN_MOVED_FROM | IN_ISDIR, cookie=9, name="d"),
            make_record(4, IN_MOVED_TO | IN_ISDIR, cookie=9, name="d"),
        )
        assert change.kind == ChangeKind.RENAMED
        assert change.subject_handle == 1
        assert change.target_handle == 4
        assert change.is_directory is True

    def test_unpaired_moved_from(self) -> None:
        """A lone MOVED_FROM is a MOVED_AWAY."""
        changes = decode(
            make_record(1, IN_MOVED_FROM, cookie=7, name="old"),
            make_record(1, IN_CREATE, name="other"),
        )
        assert [c.kind for c in changes] == [ChangeKind.MOVED_AWAY, ChangeKind.CREATED]

    def test_moved_from_at_buffer_end(self) -> None:
        """A MOVED_FROM closing the buffer is a MOVED_AWAY."""
        (change,) = decode(make_record(1, IN_MOVED_FROM, cookie=7, name="old"))
        assert change.kind == ChangeKind.MOVED_AWAY
        assert change.cookie == 7

    def test_unpaired_moved_to(self) -> None:
        """A lone MOVED_TO is a MOVED_IN."""
        (change,) = decode(make_record(1, IN_MOVED_TO, cookie=3, name="new"))
        assert change.kind == ChangeKind.MOVED_IN

    def test_mismatched_cookies_not_paired(self) -> None:
        """Halves with different cookies stay separate."""
        changes = decode(
            make_record(1, IN_MOVED_FROM, cookie=7, name="old"),
            make_record(1, IN_MOVED_TO, cookie=8, name="new"),
        )
        assert [c.kind for c in changes] == [ChangeKind.MOVED_AWAY, ChangeKind.MOVED_IN]

    def test_adjacent_duplicate_dropped(self) -> None:
        """A record repeating the previous record's cookie is dropped."""
        changes = decode(
            make_record(1, IN_MOVED_TO, cookie=5, name="x"),
            make_record(1, IN_MOVED_TO, cookie=5, name="x"),
        )
        assert len(changes) == 1

    def test_duplicate_after_pair_dropped(self) -> None:
        """A repeat of a paired cookie right after the pair is dropped."""
        changes = decode(
            make_record(1, IN_MOVED_FROM, cookie=5, name="a"),
            make_record(1, IN_MOVED_TO, cookie=5, name="b"),
            make_record(1, IN_MOVED_TO, cookie=5, name="b"),
        )
        assert [c.kind for c in changes] == [ChangeKind.RENAMED]

    def test_non_adjacent_duplicate_delivered(self) -> None:
        """A repeated cookie separated by another record is delivered."""
        changes = decode(
            make_record(1, IN_MOVED_TO, cookie=5, name="x"),
            make_record(1, IN_CREATE, name="y"),
            make_record(1, IN_MOVED_TO, cookie=5, name="x"),
        )
        assert len(changes) == 3

    def test_zero_cookies_never_duplicates(self) -> None:
        """Records without cookies are never treated as duplicates."""
        changes = decode(
            make_record(1, IN_MODIFY),
            make_record(1, IN_MODIFY),
        )
        assert len(changes) == 2

    def test_self_events(self) -> None:
        """DELETE_SELF and MOVE_SELF map to DELETED and MOVED_AWAY."""
        changes = decode(make_record(2, IN_MOVE_SELF), make_record(3, IN_DELETE_SELF))
        assert [c.kind for c in changes] == [ChangeKind.MOVED_AWAY, ChangeKind.DELETED]
        assert all(c.is_self_event for c in changes)

    def test_ignored(self) -> None:
        """IN_IGNORED is reported so the table can forget the handle."""
        (change,) = decode(make_record(6, IN_IGNORED))
        assert change.kind == ChangeKind.IGNORED
        assert change.subject_handle == 6

    def test_uninteresting_mask_skipped(self) -> None:
        """Records outside the mapped set produce nothing."""
        assert decode(make_record(1, IN_ACCESS, name="a")) == []

    def test_overflow(self) -> None:
        """Queue overflow is fatal."""
        with pytest.raises(QueueOverflowError):
            decode(make_record(-1, IN_Q_OVERFLOW))

    def test_truncated(self) -> None:
        """Malformed buffers raise."""
        with pytest.raises(TruncatedRecordError):
            decode(b"\x00" * 10)

    def test_lazy(self) -> None:
        """Nothing is decoded until iteration."""
        changes = decode_buffer(make_record(-1, IN_Q_OVERFLOW))
        with pytest.raises(QueueOverflowError):
            next(changes)

    def test_concatenation(self) -> None:
        """Decoding two buffers equals decoding their concatenation when no pair spans them."""
        first = make_record(1, IN_CREATE, name="a") + make_record(1, IN_MODIFY)
        second = make_record(1, IN_MOVED_FROM, cookie=2, name="b") + make_record(
            1, IN_MOVED_TO, cookie=2, name="c"
        )
        separately = list(decode_buffer(first)) + list(decode_buffer(second))
        assert separately == list(decode_buffer(first + second))


class TestEventStream:
    """Tests for EventStream."""

    def test_changes_until_closed(self) -> None:
        """Should yield decoded changes until the source closes."""
        notifier = FakeNotifier()
        notifier.push(make_record(1, IN_CREATE, name="a"))
        notifier.push(make_record(1, IN_DELETE, name="a"))
        notifier.close()

        changes = list(EventStream(notifier).changes())
        assert [c.kind for c in changes] == [ChangeKind.CREATED, ChangeKind.DELETED]

    def test_closed_source_is_empty(self) -> None:
        """A closed source yields nothing."""
        notifier = FakeNotifier()
        notifier.close()
        assert list(EventStream(notifier)) == []

    def test_read_error(self) -> None:
        """Read failures are wrapped."""
        stream = EventStream(FailingSource(OSError(errno.EBADF, "Bad file descriptor")))
        with pytest.raises(EventStreamError, match="Error reading notifier"):
            list(stream.changes())
