"""Tests for formatting, coercion and logging helpers."""

import logging
import math
from datetime import datetime, timezone

import pytest

from tripstats.utils.coerce import (
    coerce_count,
    coerce_float,
    coerce_int,
    parse_iso_datetime,
    parse_optional_float,
)
from tripstats.utils.formatting import (
    format_cost,
    format_duration,
    format_elapsed,
    format_percent,
    format_tokens,
    truncate_content,
    truncate_path,
)
from tripstats.utils.log import StructuredFormatter, enable_file_logging, get_logger


@pytest.mark.parametrize(
    "count, expected",
    [(0, "0"), (750, "750"), (999.6, "1000"), (1_500, "1.5K"), (2_400_000, "2.4M")],
)
def test_format_tokens(count, expected):
    assert format_tokens(count) == expected


def test_format_percent_and_cost():
    assert format_percent(90.0) == "90"
    assert format_percent(12.25) == "12.2"
    assert format_cost(0.031515) == "$0.03"
    assert format_cost(1234.5) == "$1,234"


def test_coercion_helpers():
    assert coerce_int("12") == 12
    assert coerce_int(None) == 0
    assert coerce_int(math.inf) == 0
    assert coerce_count(-5) == 0
    assert coerce_float("nan") == 0.0
    assert coerce_float("2.5") == 2.5
    assert parse_optional_float(" 1.10 ") == pytest.approx(1.10)
    assert parse_optional_float("abc") is None
    assert parse_optional_float(True) is None


def test_structured_formatter_appends_extras():
    formatter = StructuredFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("tripstats", logging.DEBUG, __file__, 1, "hit", None, None)
    record.session_id = "abc"
    assert formatter.format(record) == 'DEBUG hit | {"session_id": "abc"}'


def test_enable_file_logging_writes_debug_records(tmp_path, monkeypatch):
    monkeypatch.setenv("TRIPSTATS_LOG_DIR", str(tmp_path / "logs"))
    log_file = enable_file_logging()
    assert log_file is not None

    get_logger().debug("[test] cache lookup", extra={"session_id": "abc"})
    for handler in get_logger().logger.handlers:
        handler.flush()

    content = log_file.read_text(encoding="utf-8")
    assert "[test] cache lookup" in content
    assert '"session_id": "abc"' in content


def test_file_logging_disabled_without_directory():
    assert enable_file_logging() is None


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "<1m"), (59.9, "<1m"), (60, "1m"), (2_700, "45m"), (7_200, "2h"), (5_430, "1h 30m")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


@pytest.mark.parametrize(
    "seconds, expected",
    [(0.4, "<1s"), (4.6, "5s"), (59.4, "59s"), (59.5, "1m"), (120, "2m"), (90, "1m 30s")],
)
def test_format_elapsed(seconds, expected):
    assert format_elapsed(seconds) == expected


def test_truncation_helpers():
    assert truncate_path("/src/app/main.py") == "main.py"
    assert truncate_path("/src/app/main.py", levels=2) == "app/main.py"
    assert truncate_path("main.py") == "main.py"
    assert truncate_path("/") == ""
    assert truncate_content("short") == "short"
    assert truncate_content("x" * 60) == "x" * 47 + "..."
    assert truncate_content("abcdefgh", max_len=8) == "abcdefgh"


def test_parse_iso_datetime():
    utc = datetime(2025, 3, 1, 10, 0, 5, 123000, tzinfo=timezone.utc)
    assert parse_iso_datetime("2025-03-01T10:00:05.123Z") == utc
    assert parse_iso_datetime("2025-03-01T10:00:05.123") == utc
    assert parse_iso_datetime("yesterday") is None
    assert parse_iso_datetime(1_700_000_000) is None
    assert parse_iso_datetime("") is None


def test_warnings_reach_the_log_file(tmp_path, monkeypatch):
    monkeypatch.setenv("TRIPSTATS_LOG_DIR", str(tmp_path / "logs"))
    log_file = enable_file_logging()

    get_logger().warning("[config] Ignoring invalid billing setting", extra={"field": "x"})
    for handler in get_logger().logger.handlers:
        handler.flush()

    content = log_file.read_text(encoding="utf-8")
    assert "WARNING" in content
    assert '"field": "x"' in content
