"""rsync-based replicator.

Copies are delegated to rsync run as a subprocess with an argument list, so
no path ever goes through a shell. Removals and renames are applied directly
to the destination tree.

Source paths are passed as ``SOURCE/./relative/path`` together with
``--relative`` so that rsync recreates missing parent directories under the
destination.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess

from dsync.core.config import DEFAULT_RSYNC_OPTIONS, MirrorConfig
from dsync.core.types import ReplicationMode

logger = logging.getLogger(__name__)

# Lines of rsync stderr kept in failure logs
STDERR_TAIL_LINES = 5


class RsyncReplicator:
    """Replicator backed by the rsync executable.

    Usage:
        replicator = RsyncReplicator.from_config(config)
        replicator.initial_sync()
        replicator.replicate_file("logs/app.log", ReplicationMode.APPEND)
    """

    def __init__(
        self,
        source: str,
        destination: str,
        rsync_path: str = "rsync",
        options: list[str] | None = None,
        initial_options: list[str] | None = None,
    ) -> None:
        """Initialize the replicator.

        Args:
            source: Source root directory.
            destination: Destination root directory.
            rsync_path: rsync executable.
            options: Options for per-change transfers.
            initial_options: Options for the full-tree startup transfer.
        """
        self._source = source
        self._destination = destination
        self._rsync_path = rsync_path
        self._options = list(options) if options is not None else list(DEFAULT_RSYNC_OPTIONS)
        self._initial_options = (
            list(initial_options) if initial_options is not None else list(self._options)
        )

    @classmethod
    def from_config(cls, config: MirrorConfig) -> RsyncReplicator:
        """Create a replicator from a mirror configuration."""
        return cls(
            source=config.source,
            destination=config.destination,
            rsync_path=config.rsync_path,
            options=config.rsync_options,
            initial_options=config.initial_sync_options,
        )

    def initial_sync(self) -> bool:
        """Mirror the whole source tree (deleting extraneous destination files)."""
        return self._rsync(
            [*self._initial_options, self._source + os.sep, self._destination + os.sep],
            "initial sync",
        )

    def replicate_directory(self, relative_path: str) -> bool:
        """Mirror one directory tree."""
        return self._rsync(
            [
                *self._options,
                "--delete",
                "--relative",
                self._source_spec(relative_path),
                self._destination + os.sep,
            ],
            relative_path or ".",
        )

    def replicate_file(self, relative_path: str, mode: ReplicationMode) -> bool:
        """Mirror one file; APPEND only sends bytes past the destination's size."""
        args = [*self._options, "--relative"]
        if mode == ReplicationMode.APPEND:
            args.append("--append-verify")
        args += [self._source_spec(relative_path), self._destination + os.sep]
        return self._rsync(args, relative_path)

    def remove_destination_path(self, relative_path: str, recursive: bool) -> bool:
        """Delete a file, or a whole directory when recursive."""
        target = self._destination_path(relative_path)
        if target is None:
            return False
        try:
            if recursive and os.path.isdir(target) and not os.path.islink(target):
                shutil.rmtree(target)
            else:
                os.unlink(target)
        except FileNotFoundError:
            logger.debug("Already absent from destination: %s", relative_path)
            return True
        except OSError as e:
            logger.error("Error removing %s from destination: %s", relative_path, e)
            return False
        logger.info("Removed %s from destination", relative_path)
        return True

    def rename_destination_path(self, old_relative_path: str, new_relative_path: str) -> bool:
        """Rename a path inside the destination, creating parents as needed."""
        old_target = self._destination_path(old_relative_path)
        new_target = self._destination_path(new_relative_path)
        if old_target is None or new_target is None:
            return False
        try:
            os.makedirs(os.path.dirname(new_target), exist_ok=True)
            os.replace(old_target, new_target)
        except OSError as e:
            logger.warning(
                "Error renaming %s -> %s in destination: %s",
                old_relative_path,
                new_relative_path,
                e,
            )
            return False
        logger.info("Renamed %s -> %s in destination", old_relative_path, new_relative_path)
        return True

    def _source_spec(self, relative_path: str) -> str:
        """Source argument with the --relative anchor ("/src/./a/b")."""
        return os.path.join(self._source, ".", relative_path)

    def _destination_path(self, relative_path: str) -> str | None:
        """Absolute destination path, None if it would leave the destination root."""
        if not relative_path:
            logger.error("Refusing to modify the destination root itself")
            return None
        target = os.path.normpath(os.path.join(self._destination, relative_path))
        if not target.startswith(self._destination.rstrip(os.sep) + os.sep):
            logger.error("Refusing path outside destination: %s", relative_path)
            return None
        return target

    def _rsync(self, args: list[str], description: str) -> bool:
        """Run rsync and report success."""
        command = [self._rsync_path, *args]
        logger.debug("Running: %s", command)
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            logger.error("Error running %s for %s: %s", self._rsync_path, description, e)
            return False

        if result.returncode != 0:
            tail = "\n".join(result.stderr.strip().splitlines()[-STDERR_TAIL_LINES:])
            logger.error(
                "rsync failed for %s (exit %d): %s",
                description,
                result.returncode,
                tail,
            )
            return False
        return True
