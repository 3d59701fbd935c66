"""Integration tests: payment recording, idempotency and student debt."""

from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from classledger.core.exceptions import Conflict, NotFound, ValidationFailed
from classledger.models.activity import ActivityLog
from classledger.models.enums import PaymentKind, UnitType
from classledger.models.ledger import DebtAdjustment, Payment, StudentFinancial
from classledger.schemas.payment import PaymentCreate
from classledger.services.enrollment_service import EnrollmentService
from classledger.services.ledger_service import LedgerService
from classledger.services.payment_service import PaymentService


def _payment(enrollment_id, amount="1500", **kwargs) -> PaymentCreate:
    kwargs.setdefault("kind", PaymentKind.PAY_SESSIONS)
    return PaymentCreate(enrollment_id=enrollment_id, amount=Decimal(amount), **kwargs)


async def test_payment_credits_sessions(db, seed, enroll):
    enrollment_id = await enroll(seed, seed.session_class)

    result = await PaymentService.record_payment(
        db,
        seed.school_id,
        _payment(enrollment_id, units=Decimal("3"), unit_type=UnitType.SESSION),
        recorded_by=seed.manager.id,
    )

    assert not result.replayed
    assert result.session_credit == Decimal("3.0000")
    assert result.payment.debt_delta == 0
    assert result.payment.class_id == seed.session_class.id
    assert result.payment.student_id == seed.student.id

    enrollment = await EnrollmentService.require_enrollment(db, seed.school_id, enrollment_id)
    assert enrollment.balance == Decimal("3")


async def test_cycle_payment_without_units(db, seed, enroll):
    enrollment_id = await enroll(seed, seed.cycle_class)
    result = await PaymentService.record_payment(
        db, seed.school_id, _payment(enrollment_id, amount="2000", kind=PaymentKind.PAY_CYCLES)
    )
    assert result.session_credit == Decimal("4.0000")


async def test_partial_payment_records_fraction_and_debt_delta(db, seed, enroll):
    enrollment_id = await enroll(seed, seed.session_class)
    result = await PaymentService.record_payment(
        db,
        seed.school_id,
        _payment(enrollment_id, amount="1000", expected_price=Decimal("1000"), taken=Decimal("750")),
    )
    assert result.session_credit == Decimal("1.5000")
    assert result.payment.debt_delta == Decimal("-250")

    debt, updated_at = await PaymentService.get_student_debt(db, seed.school_id, seed.student.id)
    assert debt == Decimal("-250")
    assert updated_at is not None


async def test_idempotent_retry_returns_original(db, seed, enroll):
    enrollment_id = await enroll(seed, seed.session_class)
    data = _payment(enrollment_id, idempotency_key="receipt-0042")

    first = await PaymentService.record_payment(db, seed.school_id, data)
    first_id = first.payment.id
    second = await PaymentService.record_payment(db, seed.school_id, data)

    assert second.replayed
    assert second.payment.id == first_id
    assert second.session_credit == first.session_credit

    enrollment = await EnrollmentService.require_enrollment(db, seed.school_id, enrollment_id)
    assert enrollment.balance == Decimal("3")
    payments = await PaymentService.list_payments(db, seed.school_id, enrollment_id=enrollment_id)
    assert len(payments) == 1


async def test_racing_retry_resolves_to_single_payment(db, seed, enroll):
    """Second submission misses the pre-check and collides on insert."""
    enrollment_id = await enroll(seed, seed.session_class)
    data = _payment(
        enrollment_id, idempotency_key="receipt-race", expected_price=Decimal("1500"), taken=Decimal("1000")
    )

    first = await PaymentService.record_payment(db, seed.school_id, data)
    first_id = first.payment.id

    lookup = PaymentService.get_payment_by_idempotency_key
    calls = []

    async def stale_first_lookup(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            return None
        return await lookup(*args, **kwargs)

    with patch.object(PaymentService, "get_payment_by_idempotency_key", new=stale_first_lookup):
        second = await PaymentService.record_payment(db, seed.school_id, data)

    assert len(calls) == 2
    assert second.replayed
    assert second.payment.id == first_id

    enrollment = await EnrollmentService.require_enrollment(db, seed.school_id, enrollment_id)
    assert enrollment.balance == Decimal("2")
    debt, _ = await PaymentService.get_student_debt(db, seed.school_id, seed.student.id)
    assert debt == Decimal("-500")


async def test_same_key_on_other_enrollment_is_independent(db, seed, enroll):
    first_enrollment = await enroll(seed, seed.session_class)
    second_enrollment = await enroll(seed, seed.cycle_class)

    a = await PaymentService.record_payment(db, seed.school_id, _payment(first_enrollment, idempotency_key="k"))
    b = await PaymentService.record_payment(
        db, seed.school_id, _payment(second_enrollment, amount="2000", kind=PaymentKind.PAY_CYCLES, idempotency_key="k")
    )
    assert not b.replayed
    assert a.payment.id != b.payment.id


async def test_payment_without_key_is_never_deduplicated(db, seed, enroll):
    enrollment_id = await enroll(seed, seed.session_class)
    await PaymentService.record_payment(db, seed.school_id, _payment(enrollment_id, amount="500"))
    await PaymentService.record_payment(db, seed.school_id, _payment(enrollment_id, amount="500"))

    enrollment = await EnrollmentService.require_enrollment(db, seed.school_id, enrollment_id)
    assert enrollment.balance == Decimal("2")


async def test_debt_payment_kind_rejected_on_enrollment(db, seed, enroll):
    enrollment_id = await enroll(seed, seed.session_class)
    with pytest.raises(ValidationFailed):
        await PaymentService.record_payment(
            db, seed.school_id, _payment(enrollment_id, kind=PaymentKind.DEBT_PAYMENT)
        )


async def test_units_require_unit_type(db, seed, enroll):
    enrollment_id = await enroll(seed, seed.session_class)
    with pytest.raises(ValidationFailed):
        await PaymentService.record_payment(db, seed.school_id, _payment(enrollment_id, units=Decimal("2")))


async def test_payment_on_other_school_enrollment_not_found(db, seed, other_seed, enroll):
    enrollment_id = await enroll(seed, seed.session_class)
    with pytest.raises(NotFound):
        await PaymentService.record_payment(db, other_seed.school_id, _payment(enrollment_id))

    enrollment = await EnrollmentService.require_enrollment(db, seed.school_id, enrollment_id)
    assert enrollment.balance == 0


async def test_payment_writes_activity_entry(db, seed, enroll):
    enrollment_id = await enroll(seed, seed.session_class)
    result = await PaymentService.record_payment(
        db, seed.school_id, _payment(enrollment_id), recorded_by=seed.manager.id
    )

    rows = await db.execute(select(ActivityLog).where(ActivityLog.entity_id == result.payment.id))
    entry = rows.scalar_one()
    assert entry.action == "payment_recorded"
    assert entry.actor_id == seed.manager.id


async def test_activity_failure_does_not_undo_payment(db, seed, enroll):
    enrollment_id = await enroll(seed, seed.session_class)

    with patch("classledger.services.activity_service.ActivityLog", side_effect=SQLAlchemyError("log table gone")):
        result = await PaymentService.record_payment(db, seed.school_id, _payment(enrollment_id))

    assert not result.replayed
    enrollment = await EnrollmentService.require_enrollment(db, seed.school_id, enrollment_id)
    assert enrollment.balance == Decimal("3")
    logged = await db.execute(select(ActivityLog))
    assert logged.scalars().all() == []


async def test_list_payments_filters(db, seed, enroll):
    session_enrollment = await enroll(seed, seed.session_class)
    cycle_enrollment = await enroll(seed, seed.cycle_class)
    await PaymentService.record_payment(db, seed.school_id, _payment(session_enrollment, amount="500"))
    await PaymentService.record_payment(
        db, seed.school_id, _payment(cycle_enrollment, amount="2000", kind=PaymentKind.PAY_CYCLES)
    )

    by_class = await PaymentService.list_payments(db, seed.school_id, class_id=seed.cycle_class.id)
    assert [p.kind for p in by_class] == [PaymentKind.PAY_CYCLES]
    by_student = await PaymentService.list_payments(db, seed.school_id, student_id=seed.student.id)
    assert len(by_student) == 2
    limited = await PaymentService.list_payments(db, seed.school_id, limit=1)
    assert len(limited) == 1




async def test_payment_without_expected_price_books_no_debt(db, seed, enroll):
    enrollment_id = await enroll(seed, seed.session_class)
    result = await PaymentService.record_payment(
        db, seed.school_id, _payment(enrollment_id, amount="1500", taken=Decimal("1000"))
    )

    assert result.payment.expected_price == Decimal("1500")
    assert result.payment.taken == Decimal("1000")
    assert result.payment.debt_delta == 0
    assert result.session_credit == Decimal("2.0000")

    debt, updated_at = await PaymentService.get_student_debt(db, seed.school_id, seed.student.id)
    assert debt == 0
    assert updated_at is not None


# Student debt

async def _underpaid(db, seed, enroll):
    """1000 taken against an expected 1500: a -500 delta."""
    enrollment_id = await enroll(seed, seed.session_class)
    await PaymentService.record_payment(
        db,
        seed.school_id,
        _payment(enrollment_id, expected_price=Decimal("1500"), taken=Decimal("1000")),
    )
    return enrollment_id


async def _owes(db, seed, amount="500"):
    await PaymentService.adjust_student_debt(
        db, seed.school_id, seed.student.id, Decimal(amount), "arrears carried over"
    )


async def test_student_without_payments_has_zero_debt(db, seed):
    debt, updated_at = await PaymentService.get_student_debt(db, seed.school_id, seed.student.id)
    assert debt == 0
    assert updated_at is None


async def test_debt_of_unknown_student(db, seed, other_seed):
    with pytest.raises(NotFound):
        await PaymentService.get_student_debt(db, seed.school_id, other_seed.student.id)


async def test_pay_student_debt_reduces_what_is_owed(db, seed):
    await _owes(db, seed)

    payment = await PaymentService.pay_student_debt(db, seed.school_id, seed.student.id, Decimal("200"))
    assert payment.kind == PaymentKind.DEBT_PAYMENT
    assert payment.amount == Decimal("200")
    assert payment.debt_delta == Decimal("-200")
    assert payment.expected_price == Decimal("200")
    assert payment.taken == Decimal("200")

    debt, _ = await PaymentService.get_student_debt(db, seed.school_id, seed.student.id)
    assert debt == Decimal("300")


async def test_pay_student_debt_caps_at_outstanding(db, seed):
    await _owes(db, seed)

    first = await PaymentService.pay_student_debt(db, seed.school_id, seed.student.id, Decimal("300"))
    assert first.amount == Decimal("300")
    assert first.enrollment_id is None
    assert first.class_id is None
    assert first.session_credit == 0

    second = await PaymentService.pay_student_debt(db, seed.school_id, seed.student.id, Decimal("999"))
    assert second.amount == Decimal("200")

    debt, _ = await PaymentService.get_student_debt(db, seed.school_id, seed.student.id)
    assert debt == 0

    with pytest.raises(Conflict):
        await PaymentService.pay_student_debt(db, seed.school_id, seed.student.id, Decimal("10"))


async def test_nothing_to_pay_when_school_owes_student(db, seed, enroll):
    await _underpaid(db, seed, enroll)
    with pytest.raises(Conflict):
        await PaymentService.pay_student_debt(db, seed.school_id, seed.student.id, Decimal("100"))


async def test_debt_payment_is_not_class_income(db, seed, enroll):
    enrollment_id = await _underpaid(db, seed, enroll)
    await _owes(db, seed, "800")
    await PaymentService.pay_student_debt(db, seed.school_id, seed.student.id, Decimal("300"))

    enrollment = await EnrollmentService.require_enrollment(db, seed.school_id, enrollment_id)
    assert enrollment.balance == Decimal("2")
    debt, _ = await PaymentService.get_student_debt(db, seed.school_id, seed.student.id)
    assert debt == 0


async def test_adjust_student_debt(db, seed):
    await _owes(db, seed)
    adjustment = await PaymentService.adjust_student_debt(
        db, seed.school_id, seed.student.id, Decimal("-200"), "discount", actor_id=seed.manager.id
    )
    assert adjustment.delta == Decimal("-200")

    debt, _ = await PaymentService.get_student_debt(db, seed.school_id, seed.student.id)
    assert debt == Decimal("300")

    with pytest.raises(ValidationFailed):
        await PaymentService.adjust_student_debt(db, seed.school_id, seed.student.id, Decimal("0"), "noop")


async def test_rebuild_repairs_drifted_debt(db, seed, enroll, session_factory):
    await _underpaid(db, seed, enroll)
    await _owes(db, seed, "800")
    await PaymentService.pay_student_debt(db, seed.school_id, seed.student.id, Decimal("100"))

    async with session_factory() as session:
        await session.execute(
            update(StudentFinancial)
            .where(StudentFinancial.student_id == seed.student.id)
            .values(debt=Decimal("-9999"))
        )
        await session.commit()

    rebuild = await LedgerService.rebuild_student_debt(db, seed.school_id, seed.student.id)
    assert rebuild.stored_debt == Decimal("-9999")
    assert rebuild.replayed_debt == Decimal("200")
    assert rebuild.drift == Decimal("-10199")

    debt, _ = await PaymentService.get_student_debt(db, seed.school_id, seed.student.id)
    assert debt == Decimal("200")

    again = await LedgerService.rebuild_student_debt(db, seed.school_id, seed.student.id)
    assert again.drift == 0


async def test_debt_survives_enrollment_deletion(db, seed, enroll):
    enrollment_id = await _underpaid(db, seed, enroll)
    await EnrollmentService.delete_enrollment(db, seed.school_id, enrollment_id)

    debt, _ = await PaymentService.get_student_debt(db, seed.school_id, seed.student.id)
    assert debt == Decimal("-500")
    remaining = await db.execute(select(Payment).where(Payment.student_id == seed.student.id))
    assert remaining.scalars().all() == []

    carried = await db.execute(select(DebtAdjustment).where(DebtAdjustment.student_id == seed.student.id))
    adjustment = carried.scalar_one()
    assert adjustment.reason == "enrollment_deleted"
    assert adjustment.delta == Decimal("-500")

    rebuild = await LedgerService.rebuild_student_debt(db, seed.school_id, seed.student.id)
    assert rebuild.replayed_debt == Decimal("-500")
    assert rebuild.drift == 0


async def test_deleting_enrollment_without_debt_records_no_adjustment(db, seed, enroll):
    enrollment_id = await enroll(seed, seed.session_class)
    await PaymentService.record_payment(db, seed.school_id, _payment(enrollment_id))
    await EnrollmentService.delete_enrollment(db, seed.school_id, enrollment_id)

    carried = await db.execute(select(DebtAdjustment))
    assert carried.scalars().all() == []
