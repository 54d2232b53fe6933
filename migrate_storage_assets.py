#!/usr/bin/env python3
"""Build the storage manifest and upload missing assets (dry run unless --run)."""

from __future__ import annotations

import sys

from storage_migration.cli import main

if __name__ == "__main__":
    sys.exit(main(["migrate", *sys.argv[1:]]))
