"""Unit tests for payment, attendance and finance schemas."""

from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from classledger.core.exceptions import Conflict, NotFound, ValidationFailed
from classledger.models.enums import PaymentKind, PaymentMethod, SummaryState
from classledger.schemas.attendance import AttendanceMark
from classledger.schemas.finance import ManualTransactionCreate, MonthlyFinancials, TeacherPayoutCreate
from classledger.schemas.payment import DebtAdjustmentCreate, PaymentCreate
from classledger.schemas.responses import ErrorResponse


def test_payment_create_defaults():
    data = PaymentCreate(enrollment_id=uuid4(), amount=Decimal("1500"), kind=PaymentKind.PAY_SESSIONS)
    assert data.method == PaymentMethod.CASH
    assert data.taken is None
    assert data.expected_price is None
    assert data.idempotency_key is None


def test_payment_create_rejects_non_positive_amount():
    with pytest.raises(ValidationError):
        PaymentCreate(enrollment_id=uuid4(), amount=Decimal("0"), kind=PaymentKind.PAY_SESSIONS)


def test_payment_create_blank_key_is_none():
    data = PaymentCreate(
        enrollment_id=uuid4(), amount=Decimal("10"), kind=PaymentKind.PAY_SESSIONS, idempotency_key="   "
    )
    assert data.idempotency_key is None


def test_payment_create_key_is_stripped():
    data = PaymentCreate(
        enrollment_id=uuid4(), amount=Decimal("10"), kind=PaymentKind.PAY_SESSIONS, idempotency_key=" abc "
    )
    assert data.idempotency_key == "abc"


def test_payment_create_rejects_unknown_method():
    with pytest.raises(ValidationError):
        PaymentCreate(enrollment_id=uuid4(), amount=Decimal("10"), kind=PaymentKind.PAY_SESSIONS, method="card")


def test_debt_adjustment_rejects_zero():
    with pytest.raises(ValidationError):
        DebtAdjustmentCreate(student_id=uuid4(), delta=Decimal("0"), reason="typo")


def test_attendance_mark_rejects_unknown_status():
    with pytest.raises(ValidationError):
        AttendanceMark(enrollment_id=uuid4(), date="2026-03-01", status="late")


def test_manual_transaction_requires_category():
    with pytest.raises(ValidationError):
        ManualTransactionCreate(type="expense", category="", amount=Decimal("10"))


def test_teacher_payout_amount_positive():
    with pytest.raises(ValidationError):
        TeacherPayoutCreate(teacher_id=uuid4(), class_id=uuid4(), amount=Decimal("-5"))


def test_monthly_totals_exclude_state():
    figures = MonthlyFinancials(year=2026, month=3, net_balance=Decimal("10"), state=SummaryState.FROZEN)
    totals = figures.totals()
    assert totals["net_balance"] == Decimal("10")
    assert "state" not in totals
    assert "data_source" not in totals
    assert "frozen_at" not in totals


@pytest.mark.parametrize(
    "exc,code,status_code",
    [
        (ValidationFailed("bad"), "VALIDATION_ERROR", 400),
        (NotFound("gone"), "RESOURCE_NOT_FOUND", 404),
        (Conflict("taken"), "CONFLICT", 409),
    ],
)
def test_error_envelope(exc, code, status_code):
    body = ErrorResponse.from_error(exc).model_dump()
    assert body == {"success": False, "error": {"code": code, "message": exc.message}}
    assert exc.status_code == status_code
