#!/usr/bin/env python3
"""Verify that every database and catalog asset path exists in storage."""

from __future__ import annotations

import sys

from storage_migration.cli import main

if __name__ == "__main__":
    sys.exit(main(["verify", *sys.argv[1:]]))
