#!/usr/bin/env python3
"""Command-line entry point for locating lane assemblies on disk."""
from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from pathfind.cli import assemblyfind_main


if __name__ == "__main__":
    sys.exit(assemblyfind_main())
