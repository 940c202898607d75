"""Unit tests for femtologging integration helpers.

Run with:
    pytest tests/unit/test_logging.py
"""

from __future__ import annotations

import pytest

from azgitconnect.logging import (
    configure_logging,
    format_log_message,
    log_debug,
    log_error,
    log_exception,
    log_info,
    log_warning,
    normalize_log_level,
)
from tests.helpers.fakes import RecordingLogger


@pytest.mark.parametrize(
    ("input_level", "expected_level", "expected_invalid"),
    [
        ("warning", "WARNING", False),
        (" debug ", "DEBUG", False),
        (None, "INFO", True),
        ("", "INFO", True),
        ("chatty", "INFO", True),
    ],
)
def test_normalize_log_level(
    input_level: str | None, expected_level: str, *, expected_invalid: bool
) -> None:
    """Normalize log levels and flag unusable inputs."""
    level, invalid = normalize_log_level(input_level)

    assert level == expected_level
    assert invalid is expected_invalid


def test_format_log_message_uses_percent_formatting() -> None:
    """Percent formatting produces the expected message."""
    assert format_log_message("hello %s (%d)", "world", 3) == "hello world (3)"


@pytest.mark.parametrize(
    ("emit", "level"),
    [
        (log_debug, "DEBUG"),
        (log_info, "INFO"),
        (log_warning, "WARNING"),
        (log_error, "ERROR"),
    ],
)
def test_log_helpers_format_and_pass_level(
    emit: object, level: str
) -> None:
    """Each helper formats its template and emits at its own level."""
    logger = RecordingLogger()

    emit(logger, "reusing %s", "gh-octo-reef")  # type: ignore[operator]

    assert logger.calls == [(level, "reusing gh-octo-reef", None, False)]


def test_log_exception_does_not_interpolate() -> None:
    """log_exception passes the message through untouched with exc_info."""
    logger = RecordingLogger()
    exc = ValueError("boom")

    log_exception(logger, "failed: 100% broken", exc)

    assert logger.calls == [("ERROR", "failed: 100% broken", exc, False)]


def test_configure_logging_normalizes_and_configures(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """configure_logging hands the normalized level to femtologging."""
    captured: dict[str, object] = {}

    def fake_basic_config(**kwargs: object) -> None:
        captured.update(kwargs)

    monkeypatch.setattr("azgitconnect.logging.basicConfig", fake_basic_config)

    normalized, invalid = configure_logging("nope")

    assert (normalized, invalid) == ("INFO", True)
    assert captured == {"level": "INFO", "force": False}
