import sys
import warnings
from pathlib import Path

import pytest

# Ensure repository root is importable for `beatfeatures` package resolution.
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from beatfeatures.tests.map_utils import make_document, make_notes, write_map_dir  # noqa: E402


@pytest.fixture
def scenario_document():
    # 8 arrows + 2 dots = 10 non-bomb notes, plus 1 bomb and 3 obstacles
    return make_document(notes=make_notes(normal=8, dots=2, bombs=1), obstacles=3)


@pytest.fixture
def map_dir(tmp_path):
    return write_map_dir(tmp_path / "map")


def pytest_configure(config):
    warnings.filterwarnings("ignore", category=DeprecationWarning)
