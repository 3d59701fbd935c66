"""Unit tests for UTC time helpers."""

from datetime import date, datetime, timedelta, timezone

import pytest

from classledger.utils.time import get_utc_now, month_bounds, to_date_only


def test_get_utc_now_is_naive():
    assert get_utc_now().tzinfo is None


def test_to_date_only_passthrough():
    assert to_date_only(date(2026, 1, 2)) == date(2026, 1, 2)
    assert to_date_only(datetime(2026, 1, 2, 23, 59)) == date(2026, 1, 2)


def test_to_date_only_converts_aware_to_utc():
    moment = datetime(2026, 1, 3, 0, 30, tzinfo=timezone(timedelta(hours=1)))
    assert to_date_only(moment) == date(2026, 1, 2)


def test_to_date_only_strips_whitespace():
    assert to_date_only("  2026-05-01 ") == date(2026, 5, 1)


@pytest.mark.parametrize("value", ["", "   ", "2026-13-01", None, 3.5])
def test_to_date_only_rejects(value):
    with pytest.raises((ValueError, TypeError)):
        to_date_only(value)


def test_month_bounds():
    assert month_bounds(2026, 3) == (datetime(2026, 3, 1), datetime(2026, 4, 1))
    assert month_bounds(2026, 12) == (datetime(2026, 12, 1), datetime(2027, 1, 1))
