"""dsync - Live directory mirroring daemon.

Watches a source tree with inotify and replicates every change to a
destination tree with rsync, one replication action at a time.
"""

__version__ = "0.1.0"
