"""Time Utilities for UTC management"""

from datetime import date, datetime, timezone
from typing import Tuple, Union

DateInput = Union[str, date, datetime]


def get_utc_now() -> datetime:
    """
    Returns a naive UTC datetime.
    Matches the DB schema (TIMESTAMP WITHOUT TIME ZONE).
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_utc_today() -> date:
    return get_utc_now().date()


def to_date_only(value: DateInput) -> date:
    """
    Normalize a submitted attendance date to a UTC calendar date.

    Accepts ``YYYY-MM-DD`` strings, ISO-8601 datetime strings (``Z`` or an
    offset allowed), ``date`` and ``datetime`` objects. Aware datetimes are
    converted to UTC before the time of day is dropped; naive ones are taken
    as UTC already.

    Raises:
        ValueError: If the value cannot be read as a date
    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        return value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("Date is required")
        if len(text) == 10:
            return date.fromisoformat(text)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported date value: {value!r}")

    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.date()


def month_bounds(year: int, month: int) -> Tuple[datetime, datetime]:
    """Return the UTC range [first day 00:00, first day of next month) for a month."""
    start = datetime(year, month, 1)
    if month == 12:
        end = datetime(year + 1, 1, 1)
    else:
        end = datetime(year, month + 1, 1)
    return start, end
