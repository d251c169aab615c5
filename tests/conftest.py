from pathlib import Path

import pytest


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    out = tmp_path / "spt"
    out.mkdir()
    return out
