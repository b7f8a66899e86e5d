"""Allow running dsync as ``python -m dsync``."""

from dsync.cli import main

main()
