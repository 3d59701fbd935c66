"""Unit tests for attendance mark/undo transitions (pure logic, no DB)."""

from datetime import date
from decimal import Decimal

import pytest

from classledger.core.exceptions import ValidationFailed
from classledger.models.enums import AttendanceStatus
from classledger.services.attendance_service import (
    mark_transition,
    parse_attendance_date,
    undo_transition,
)

PRESENT = AttendanceStatus.PRESENT
ABSENT = AttendanceStatus.ABSENT


@pytest.mark.parametrize(
    "prior,new,attended,absent,balance",
    [
        (None, PRESENT, 1, 0, Decimal("-1")),
        (None, ABSENT, 0, 1, Decimal("0")),
        (PRESENT, ABSENT, -1, 1, Decimal("1")),
        (ABSENT, PRESENT, 1, -1, Decimal("-1")),
        (PRESENT, PRESENT, 0, 0, Decimal("0")),
        (ABSENT, ABSENT, 0, 0, Decimal("0")),
    ],
)
def test_mark_transition_table(prior, new, attended, absent, balance):
    delta = mark_transition(prior, new)
    assert delta.attended == attended
    assert delta.absent == absent
    assert delta.balance == balance


def test_same_status_is_noop():
    assert mark_transition(PRESENT, PRESENT).is_noop
    assert not mark_transition(None, ABSENT).is_noop


@pytest.mark.parametrize("status", [PRESENT, ABSENT])
def test_undo_reverses_first_mark(status):
    mark = mark_transition(None, status)
    undo = undo_transition(status)
    assert mark.attended + undo.attended == 0
    assert mark.absent + undo.absent == 0
    assert mark.balance + undo.balance == 0


def test_absence_never_touches_balance():
    assert undo_transition(ABSENT).balance == 0
    assert mark_transition(None, ABSENT).balance == 0


def test_parse_attendance_date_accepts_iso_forms():
    assert parse_attendance_date("2026-03-14") == date(2026, 3, 14)
    assert parse_attendance_date("2026-03-14T23:30:00Z") == date(2026, 3, 14)
    assert parse_attendance_date("2026-03-15T01:00:00+02:00") == date(2026, 3, 14)


@pytest.mark.parametrize("value", ["", "14/03/2026", "yesterday", 20260314])
def test_parse_attendance_date_rejects_garbage(value):
    with pytest.raises(ValidationFailed):
        parse_attendance_date(value)
