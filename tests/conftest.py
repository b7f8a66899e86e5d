"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeNotifier, RecordingReplicator

from dsync.sync.coordinator import SyncCoordinator
from dsync.watch.table import WatchTable
from dsync.watch.walker import TreeWalker


@pytest.fixture
def notifier() -> FakeNotifier:
    """In-memory inotify stand-in."""
    return FakeNotifier()


@pytest.fixture
def table(notifier: FakeNotifier) -> WatchTable:
    """Watch table with plenty of capacity."""
    return WatchTable(notifier, capacity=1000)


@pytest.fixture
def walker(table: WatchTable) -> TreeWalker:
    """Tree walker bound to the table fixture."""
    return TreeWalker(table)


@pytest.fixture
def coordinator() -> SyncCoordinator:
    """Fresh coordinator with both gates open."""
    return SyncCoordinator()


@pytest.fixture
def replicator() -> RecordingReplicator:
    """Replicator that records every call."""
    return RecordingReplicator()


@pytest.fixture
def source(tmp_path: Path) -> Path:
    """Empty source directory."""
    path = tmp_path / "source"
    path.mkdir()
    return path


@pytest.fixture
def destination(tmp_path: Path) -> Path:
    """Empty destination directory."""
    path = tmp_path / "destination"
    path.mkdir()
    return path
