"""Replication of detected changes to the destination tree."""

from dsync.replication.base import Replicator
from dsync.replication.rsync import RsyncReplicator

__all__ = ["Replicator", "RsyncReplicator"]
