"""Integration tests: attendance marking, overrides and undo."""

from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from classledger.core.exceptions import NotFound, ValidationFailed
from classledger.models.enums import AttendanceStatus, EnrollmentStatus, PaymentKind
from classledger.schemas.payment import PaymentCreate
from classledger.services.attendance_service import AttendanceService
from classledger.services.enrollment_service import EnrollmentService
from classledger.services.payment_service import PaymentService

PRESENT = AttendanceStatus.PRESENT
ABSENT = AttendanceStatus.ABSENT


async def _state(db, school_id, enrollment_id):
    enrollment = await EnrollmentService.require_enrollment(db, school_id, enrollment_id)
    return (
        Decimal(enrollment.balance),
        enrollment.attended_count,
        enrollment.absent_count,
    )


@pytest.fixture
async def paid_enrollment(db, seed, enroll):
    """Per-session enrollment with three sessions prepaid."""
    enrollment_id = await enroll(seed, seed.session_class)
    await PaymentService.record_payment(
        db,
        seed.school_id,
        PaymentCreate(enrollment_id=enrollment_id, amount=Decimal("1500"), kind=PaymentKind.PAY_SESSIONS),
    )
    return enrollment_id


async def test_present_consumes_a_session(db, seed, paid_enrollment):
    change = await AttendanceService.mark_attendance(
        db, seed.school_id, paid_enrollment, "2026-03-02", PRESENT, marked_by=seed.manager.id
    )
    assert change.created
    assert change.attendance.status == PRESENT
    assert change.delta.balance == Decimal("-1")
    assert await _state(db, seed.school_id, paid_enrollment) == (Decimal("2"), 1, 0)

    enrollment = await EnrollmentService.require_enrollment(db, seed.school_id, paid_enrollment)
    assert enrollment.last_attendance_date == date(2026, 3, 2)


async def test_absent_does_not_touch_balance(db, seed, paid_enrollment):
    await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-02", ABSENT)
    assert await _state(db, seed.school_id, paid_enrollment) == (Decimal("3"), 0, 1)


async def test_override_present_to_absent_refunds(db, seed, paid_enrollment):
    await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-02", PRESENT)
    change = await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-02", ABSENT)

    assert not change.created
    assert change.delta.balance == Decimal("1")
    assert await _state(db, seed.school_id, paid_enrollment) == (Decimal("3"), 0, 1)

    change = await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-02", PRESENT)
    assert change.delta.balance == Decimal("-1")
    assert await _state(db, seed.school_id, paid_enrollment) == (Decimal("2"), 1, 0)


async def test_same_status_twice_is_idempotent(db, seed, paid_enrollment):
    await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-02", PRESENT)
    change = await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-02", PRESENT)

    assert not change.created
    assert change.delta.is_noop
    assert await _state(db, seed.school_id, paid_enrollment) == (Decimal("2"), 1, 0)


@pytest.mark.parametrize("status", [PRESENT, ABSENT])
async def test_mark_then_undo_restores_state(db, seed, paid_enrollment, status):
    before = await _state(db, seed.school_id, paid_enrollment)

    await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-09", status)
    change = await AttendanceService.undo_attendance(db, seed.school_id, paid_enrollment, "2026-03-09")

    assert change.undone
    assert change.attendance is None
    assert await _state(db, seed.school_id, paid_enrollment) == before
    assert await AttendanceService.get_record(db, seed.school_id, paid_enrollment, date(2026, 3, 9)) is None


async def test_undo_without_mark_returns_none(db, seed, paid_enrollment):
    assert await AttendanceService.undo_attendance(db, seed.school_id, paid_enrollment, "2026-03-09") is None
    assert await _state(db, seed.school_id, paid_enrollment) == (Decimal("3"), 0, 0)


async def test_iso_datetime_collapses_to_utc_day(db, seed, paid_enrollment):
    await AttendanceService.mark_attendance(
        db, seed.school_id, paid_enrollment, "2026-03-10T23:30:00-02:00", PRESENT
    )
    change = await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-11", ABSENT)

    assert not change.created
    assert await _state(db, seed.school_id, paid_enrollment) == (Decimal("3"), 0, 1)


async def test_last_attendance_date_only_moves_forward(db, seed, paid_enrollment):
    await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-10", PRESENT)
    await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-03", PRESENT)

    enrollment = await EnrollmentService.require_enrollment(db, seed.school_id, paid_enrollment)
    assert enrollment.last_attendance_date == date(2026, 3, 10)


async def test_invalid_date_rejected_before_write(db, seed, paid_enrollment):
    with pytest.raises(ValidationFailed):
        await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "10/03/2026", PRESENT)
    with pytest.raises(ValidationFailed):
        await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-10", "late")
    assert await _state(db, seed.school_id, paid_enrollment) == (Decimal("3"), 0, 0)


async def test_inactive_enrollment_rejected(db, seed, paid_enrollment):
    await EnrollmentService.update_status(db, seed.school_id, paid_enrollment, EnrollmentStatus.PAUSED)
    with pytest.raises(ValidationFailed):
        await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-10", PRESENT)


async def test_other_school_cannot_mark(db, seed, other_seed, paid_enrollment):
    with pytest.raises(NotFound):
        await AttendanceService.mark_attendance(db, other_seed.school_id, paid_enrollment, "2026-03-10", PRESENT)
    with pytest.raises(NotFound):
        await AttendanceService.undo_attendance(db, other_seed.school_id, paid_enrollment, "2026-03-10")


async def test_racing_first_mark_is_retried_as_override(db, seed, paid_enrollment):
    """A concurrent first mark for the same day makes our insert collide; the retry sees it."""
    await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-12", PRESENT)

    lookup = AttendanceService.get_record
    calls = []

    async def stale_first_lookup(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            return None
        return await lookup(*args, **kwargs)

    with patch.object(AttendanceService, "get_record", new=stale_first_lookup):
        change = await AttendanceService.mark_attendance(
            db, seed.school_id, paid_enrollment, "2026-03-12", ABSENT
        )

    assert len(calls) == 2
    assert not change.created
    assert change.delta.balance == Decimal("1")
    assert await _state(db, seed.school_id, paid_enrollment) == (Decimal("3"), 0, 1)


async def test_mark_returns_class_roster(db, seed, paid_enrollment, enroll):
    await enroll(seed, seed.session_class, student=seed.other_student)

    change = await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-02", PRESENT)

    assert change.class_id == seed.session_class.id
    assert len(change.roster) == 2
    marks = {item.enrollment_id: item.status_today for item in change.roster}
    assert marks[paid_enrollment] == PRESENT
    assert list(marks.values()).count(None) == 1


async def test_history_newest_first(db, seed, paid_enrollment):
    await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-02", PRESENT)
    await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-09", ABSENT)
    await AttendanceService.mark_attendance(db, seed.school_id, paid_enrollment, "2026-03-16", PRESENT)

    history = await AttendanceService.attendance_history(db, seed.school_id, paid_enrollment)
    assert [r.date for r in history] == [date(2026, 3, 16), date(2026, 3, 9), date(2026, 3, 2)]

    present_only = await AttendanceService.attendance_history(db, seed.school_id, paid_enrollment, status=PRESENT)
    assert len(present_only) == 2
