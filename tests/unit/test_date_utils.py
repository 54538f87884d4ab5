"""Unit tests for timestamp coercion and calendar helpers"""

from datetime import date, datetime, timedelta, timezone

import pytest

from credit_oracle.utils.date_utils import (
    coerce_timestamp,
    days_between,
    ensure_utc,
    months_between,
    subtract_months,
)

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)
EPOCH_2024 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value",
    [
        EPOCH_2024,
        datetime(2024, 1, 1),
        date(2024, 1, 1),
        1704067200,
        1704067200.0,
        1704067200000,
        "2024-01-01T00:00:00Z",
        "2024-01-01T01:00:00+01:00",
        {"seconds": 1704067200, "nanoseconds": 0},
        {"_seconds": 1704067200, "_nanoseconds": 0},
    ],
)
def test_coerce_timestamp_accepts_stored_representations(value):
    assert coerce_timestamp(value, now=NOW) == EPOCH_2024


def test_coerce_timestamp_keeps_fractional_seconds():
    value = {"seconds": 1704067200, "nanoseconds": 500_000_000}
    assert coerce_timestamp(value, now=NOW) == EPOCH_2024 + timedelta(milliseconds=500)


@pytest.mark.parametrize("value", [None, "not a date", True, ["2024"], {"nanoseconds": 5}])
def test_coerce_timestamp_falls_back_to_now(value):
    assert coerce_timestamp(value, now=NOW) == NOW


def test_coerce_timestamp_fallback_is_logged(caplog):
    with caplog.at_level("WARNING"):
        coerce_timestamp("yesterday-ish", now=NOW)
    assert "Unparseable timestamp" in caplog.text


def test_coerced_values_are_aware_utc():
    result = coerce_timestamp("2024-01-01T05:30:00+05:30", now=NOW)
    assert result.tzinfo == timezone.utc
    assert result == EPOCH_2024


def test_ensure_utc_attaches_timezone_to_naive():
    assert ensure_utc(datetime(2024, 1, 1)).tzinfo == timezone.utc


@pytest.mark.parametrize(
    "moment, months, expected",
    [
        (datetime(2026, 6, 15), 3, datetime(2026, 3, 15)),
        (datetime(2026, 2, 10), 3, datetime(2025, 11, 10)),
        (datetime(2026, 5, 31), 3, datetime(2026, 2, 28)),
        (datetime(2024, 5, 31), 3, datetime(2024, 2, 29)),
        (datetime(2026, 1, 1), 12, datetime(2025, 1, 1)),
    ],
)
def test_subtract_months_clamps_day(moment, months, expected):
    assert subtract_months(moment, months) == expected


def test_day_and_month_spans():
    start = NOW - timedelta(days=45)
    assert days_between(start, NOW) == 45
    assert months_between(start, NOW) == 1.5


def test_coerce_timestamp_reads_underscored_fraction():
    value = {"_seconds": 1704067200, "_nanoseconds": 250_000_000}
    assert coerce_timestamp(value, now=NOW) == EPOCH_2024 + timedelta(milliseconds=250)
