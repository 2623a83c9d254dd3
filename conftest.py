# Make the glance namespace package importable from a source checkout
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.resolve()
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _isolated_storage_env(monkeypatch, tmp_path):
    # Never let a test fall back to the real ~/Documents location.
    monkeypatch.setenv("GLANCE_ANNOTATIONS_DIR", str(tmp_path / "default-annotations"))
    monkeypatch.delenv("GLANCE_SAVE_WORKERS", raising=False)
