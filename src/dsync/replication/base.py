"""Replication collaborator interface."""

from __future__ import annotations

from typing import Protocol

from dsync.core.types import ReplicationMode


class Replicator(Protocol):
    """Propagates source changes to the destination tree.

    Every path is relative to the mirrored root ("" is the root itself).
    Each call returns True on success and False on failure; failures are
    not retried since the next change to the same path triggers replication
    again. Calls may block for as long as the copy takes.
    """

    def initial_sync(self) -> bool:
        """Mirror the whole source tree."""
        ...

    def replicate_directory(self, relative_path: str) -> bool:
        """Mirror one directory and everything below it."""
        ...

    def replicate_file(self, relative_path: str, mode: ReplicationMode) -> bool:
        """Mirror one regular file, from scratch or by appending new bytes."""
        ...

    def remove_destination_path(self, relative_path: str, recursive: bool) -> bool:
        """Delete a path from the destination."""
        ...

    def rename_destination_path(self, old_relative_path: str, new_relative_path: str) -> bool:
        """Rename a path inside the destination."""
        ...
