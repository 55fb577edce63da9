"""Shared fixtures for recurrence_lite tests."""

import logging
from collections.abc import Generator
from datetime import datetime, timezone
from typing import Any

import pytest

RECURRENCE_ENV_VARS = [
    "RECURRENCE_DEBUG",
    "RECURRENCE_LOG_LEVEL",
    "RECURRENCE_MAX_INSTANCES",
    "RECURRENCE_MAX_ITERATIONS",
    "RECURRENCE_MAX_EMPTY_PERIODS",
    "RECURRENCE_DEFAULT_TIMEZONE",
    "RECURRENCE_TEST_TIME",
]


def pytest_configure(config: Any) -> None:
    config.addinivalue_line("markers", "unit: fast, isolated unit tests")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear RECURRENCE_* variables so host settings never leak into tests."""
    for key in RECURRENCE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture(autouse=True)
def reset_default_expander() -> Generator[None, Any, None]:
    """Reset the shared expander so env-driven config is rebuilt per test."""
    yield
    import recurrence_lite.lite_rrule_expander

    recurrence_lite.lite_rrule_expander._default_expander = None


@pytest.fixture(autouse=True)
def restore_logging() -> Generator[None, Any, None]:
    """Restore logger levels and root handlers changed by a test."""
    from recurrence_lite.lite_logging import LITE_MODULES, SUPPRESSED_LOGGERS

    root = logging.getLogger()
    names = [*LITE_MODULES, *SUPPRESSED_LOGGERS]
    saved_levels = {name: logging.getLogger(name).level for name in names}
    saved_root_level = root.level
    saved_handlers = list(root.handlers)
    yield
    for name, level in saved_levels.items():
        logging.getLogger(name).setLevel(level)
    root.setLevel(saved_root_level)
    root.handlers[:] = saved_handlers


@pytest.fixture
def test_timezone() -> str:
    """Deterministic zone with DST transitions."""
    return "America/New_York"


@pytest.fixture
def jan_2024() -> tuple[datetime, datetime]:
    """Query range covering January 2024 (UTC)."""
    return (
        datetime(2024, 1, 1, tzinfo=timezone.utc),
        datetime(2024, 2, 1, tzinfo=timezone.utc),
    )
