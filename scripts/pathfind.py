#!/usr/bin/env python3
"""Command-line entry point for locating lane data on disk."""
from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from pathfind.cli import pathfind_main


if __name__ == "__main__":
    sys.exit(pathfind_main())
