"""Root conftest.py for the labtools monorepo.

Puts every package src directory on the import path, registers the markers
shared by all packages, and tags tests that patch or mock objects so their
coverage can be told apart from emulator-backed tests.
"""

from __future__ import annotations

import inspect
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from _pytest.config import Config
    from _pytest.nodes import Item


# Add all package src directories to path for imports
PROJECT_ROOT = Path(__file__).parent
for pkg_dir in PROJECT_ROOT.glob("labtools-*/src"):
    if str(pkg_dir) not in sys.path:
        sys.path.insert(0, str(pkg_dir))

# Source fragments that mean a test replaces real objects
MOCK_TOKENS = ("MagicMock", "Mock(", "patch(", "patch.dict", "patch.object", "create_autospec")


def pytest_configure(config: Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "uses_mock: Test uses mocking (auto-detected or manually marked)",
    )
    config.addinivalue_line(
        "markers",
        "hardware: Test requiring a connected function generator and oscilloscope",
    )
    config.addinivalue_line(
        "markers",
        "slow: Slow-running test",
    )


def _uses_mock(item: Item) -> bool:
    """True if the test function's source patches or mocks anything."""
    obj = getattr(item, "obj", None)
    if obj is None:
        return False
    try:
        source = inspect.getsource(obj)
    except (OSError, TypeError):
        return False
    return any(token in source for token in MOCK_TOKENS)


def pytest_collection_modifyitems(config: Config, items: list[Item]) -> None:
    """Auto-detect and mark tests that use mocking."""
    for item in items:
        if item.get_closest_marker("uses_mock") is None and _uses_mock(item):
            item.add_marker(pytest.mark.uses_mock)


def pytest_report_header(config: Config) -> list[str]:
    """Add coverage mode info to pytest header."""
    lines = ["labtools monorepo test suite"]
    if getattr(config.option, "cov_source", None):
        lines.append("Coverage: enabled; mock-based tests carry the uses_mock marker")
    return lines


@pytest.fixture
def sleeps() -> list[float]:
    """Collects requested waits; pass ``sleeps.append`` wherever a sleep function is taken."""
    return []
