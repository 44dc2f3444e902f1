import sys
from dataclasses import replace
from pathlib import Path

import pytest

SRC_PATH = Path(__file__).resolve().parents[1] / "src"

if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from snipcheck.config import PYTHON_LANGUAGE, LanguageConfig  # noqa: E402


@pytest.fixture
def python_language() -> LanguageConfig:
    """Python toolchain whose checker subprocess imports the in-tree package."""
    return replace(PYTHON_LANGUAGE, env={"PYTHONPATH": str(SRC_PATH)})
