import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def saves_dir(tmp_path):
    path = tmp_path / "saves"
    path.mkdir()
    return path


@pytest.fixture
def types_file():
    return ROOT / "checklist_types.json"
