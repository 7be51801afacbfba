from pathlib import Path

import pytest


@pytest.fixture
def project(tmp_path):
    """An empty site checkout with a WORK_DISPLAY/ folder."""
    (tmp_path / "WORK_DISPLAY").mkdir()
    return tmp_path


@pytest.fixture
def make_file():
    def _make(path: Path, data: bytes = b"") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    return _make
