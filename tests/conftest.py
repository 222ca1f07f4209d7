from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from sqlmaint.core.session import RunSession  # noqa: E402


@pytest.fixture
def session(tmp_path: Path):
    """A run session logging to a temporary directory, without console output."""
    run_session = RunSession("TESTSRV", tmp_path / "logs", console=False)
    yield run_session
    run_session.close()
