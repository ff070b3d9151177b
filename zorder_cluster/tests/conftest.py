"""Pytest configuration ensuring the package is importable during tests."""
from __future__ import annotations

import sys
from pathlib import Path

# Tests live inside the package directory, so the repository root (which
# contains ``zorder_cluster``) is not necessarily on ``sys.path`` when the
# project has not been installed.
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
