"""Shared fixtures for tipscore tests.

Helper functions (insert_tip, make_resolved, etc.) are in tests/helpers.py.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    """Temporary database path: each test gets an isolated SQLite file."""
    return tmp_path / "test.db"


@pytest.fixture()
def now() -> datetime:
    """Fixed clock for evaluation and decay tests."""
    return datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
