"""Integration tests: enrollment lifecycle and pricing snapshots."""

from decimal import Decimal

import pytest
from sqlalchemy import update

from classledger.core.exceptions import Conflict, NotFound, ValidationFailed
from classledger.models.academic import Class
from classledger.models.enums import AttendanceStatus, EnrollmentStatus, PaymentKind, PricingModel
from classledger.schemas.enrollment import EnrollmentCreate
from classledger.schemas.payment import PaymentCreate
from classledger.services.attendance_service import AttendanceService
from classledger.services.enrollment_service import EnrollmentService
from classledger.services.payment_service import PaymentService


async def test_create_enrollment_snapshots_pricing(db, seed):
    enrollment = await EnrollmentService.create_enrollment(
        db, seed.school_id, EnrollmentCreate(student_id=seed.student.id, class_id=seed.session_class.id)
    )
    assert enrollment.status == EnrollmentStatus.ACTIVE
    assert enrollment.pricing_model == PricingModel.PER_SESSION
    assert enrollment.snapshot_session_price == Decimal("500.00")
    assert enrollment.snapshot_cycle_size is None
    assert enrollment.balance == 0
    assert enrollment.attended_count == 0
    assert enrollment.absent_count == 0


async def test_per_cycle_snapshot(db, seed, enroll):
    enrollment_id = await enroll(seed, seed.cycle_class)
    enrollment = await EnrollmentService.require_enrollment(db, seed.school_id, enrollment_id)
    snapshot = enrollment.pricing_snapshot
    assert snapshot.model == PricingModel.PER_CYCLE
    assert snapshot.cycle_size == 4
    assert snapshot.cycle_price == Decimal("2000.00")
    assert snapshot.session_price is None


async def test_duplicate_active_enrollment_conflicts(db, seed, enroll):
    await enroll(seed, seed.session_class)
    with pytest.raises(Conflict):
        await enroll(seed, seed.session_class)


async def test_reenroll_after_completion(db, seed, enroll):
    first_id = await enroll(seed, seed.session_class)
    await EnrollmentService.update_status(db, seed.school_id, first_id, EnrollmentStatus.COMPLETED)
    second_id = await enroll(seed, seed.session_class)
    assert second_id != first_id

    with pytest.raises(Conflict):
        await EnrollmentService.update_status(db, seed.school_id, first_id, EnrollmentStatus.ACTIVE)


async def test_unpriced_class_is_rejected(db, seed, session_factory):
    async with session_factory() as session:
        cls = Class(
            school_id=seed.school_id,
            name="Unpriced",
            payment_model=PricingModel.PER_SESSION,
            session_price=None,
        )
        session.add(cls)
        await session.commit()

    with pytest.raises(ValidationFailed):
        await EnrollmentService.create_enrollment(
            db, seed.school_id, EnrollmentCreate(student_id=seed.student.id, class_id=cls.id)
        )


async def test_unknown_student_or_class(db, seed, other_seed):
    with pytest.raises(NotFound):
        await EnrollmentService.create_enrollment(
            db, seed.school_id, EnrollmentCreate(student_id=other_seed.student.id, class_id=seed.session_class.id)
        )
    with pytest.raises(NotFound):
        await EnrollmentService.create_enrollment(
            db, seed.school_id, EnrollmentCreate(student_id=seed.student.id, class_id=other_seed.session_class.id)
        )


async def test_teacher_cannot_be_enrolled(db, seed):
    with pytest.raises(NotFound):
        await EnrollmentService.create_enrollment(
            db, seed.school_id, EnrollmentCreate(student_id=seed.teacher.id, class_id=seed.session_class.id)
        )


async def test_class_price_change_does_not_reach_existing_enrollment(db, seed, enroll, session_factory):
    enrollment_id = await enroll(seed, seed.session_class)

    async with session_factory() as session:
        await session.execute(
            update(Class).where(Class.id == seed.session_class.id).values(session_price=Decimal("800.00"))
        )
        await session.commit()

    result = await PaymentService.record_payment(
        db,
        seed.school_id,
        PaymentCreate(enrollment_id=enrollment_id, amount=Decimal("1000"), kind=PaymentKind.PAY_SESSIONS),
    )
    assert result.session_credit == Decimal("2.0000")

    enrollment = await EnrollmentService.require_enrollment(db, seed.school_id, enrollment_id)
    assert enrollment.snapshot_session_price == Decimal("500.00")


async def test_list_enrollments(db, seed, enroll):
    await enroll(seed, seed.session_class)
    await enroll(seed, seed.session_class, student=seed.other_student)
    await enroll(seed, seed.cycle_class)

    by_class = await EnrollmentService.list_class_enrollments(db, seed.school_id, seed.session_class.id)
    assert len(by_class) == 2
    by_student = await EnrollmentService.list_student_enrollments(db, seed.school_id, seed.student.id)
    assert {e.class_id for e in by_student} == {seed.session_class.id, seed.cycle_class.id}


async def test_delete_enrollment_removes_events(db, seed, enroll):
    enrollment_id = await enroll(seed, seed.session_class)
    await PaymentService.record_payment(
        db,
        seed.school_id,
        PaymentCreate(enrollment_id=enrollment_id, amount=Decimal("500"), kind=PaymentKind.PAY_SESSIONS),
    )
    await AttendanceService.mark_attendance(
        db, seed.school_id, enrollment_id, "2026-03-02", AttendanceStatus.PRESENT
    )

    assert await EnrollmentService.delete_enrollment(db, seed.school_id, enrollment_id)

    assert await EnrollmentService.get_enrollment(db, seed.school_id, enrollment_id) is None
    assert await PaymentService.list_payments(db, seed.school_id, enrollment_id=enrollment_id) == []
    with pytest.raises(NotFound):
        await EnrollmentService.delete_enrollment(db, seed.school_id, enrollment_id)


async def test_enrollment_invisible_to_other_school(db, seed, other_seed, enroll):
    enrollment_id = await enroll(seed, seed.session_class)
    assert await EnrollmentService.get_enrollment(db, other_seed.school_id, enrollment_id) is None
