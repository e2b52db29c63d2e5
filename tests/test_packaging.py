"""Tests for the package metadata in pyproject.toml."""
import re
from pathlib import Path

PYPROJECT = Path(__file__).parent.parent / "pyproject.toml"


class TestPackaging:
    def test_python_floor_supports_union_annotations(self):
        """Should require a Python that evaluates ``X | None`` annotations (3.10+)."""
        match = re.search(r'^requires-python = ">=(\d+)\.(\d+)"', PYPROJECT.read_text(), re.MULTILINE)

        assert match is not None
        assert (int(match.group(1)), int(match.group(2))) >= (3, 10)
