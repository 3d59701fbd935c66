"""
Payment Recorder.

Turns money received into session credit on an enrollment and a debt delta
on the student, in one transaction, idempotently under client retries.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from classledger.config import settings
from classledger.core.exceptions import Conflict, NotFound, ValidationFailed
from classledger.core.logging import get_logger
from classledger.models.enums import PaymentKind, PaymentMethod
from classledger.models.ledger import DebtAdjustment, Payment
from classledger.schemas.payment import PaymentCreate
from classledger.services.activity_service import ActivityLogSink
from classledger.services.enrollment_service import EnrollmentService
from classledger.services.ledger_service import EnrollmentDelta, LedgerService
from classledger.services.pricing import derive_session_credit

logger = get_logger(__name__)

ZERO = Decimal("0")
RECORDABLE_KINDS = (PaymentKind.PAY_SESSIONS, PaymentKind.PAY_CYCLES)
MAX_PAGE_SIZE = 200


@dataclass
class PaymentResult:
    payment: Payment
    session_credit: Decimal
    replayed: bool = False


class PaymentService:
    @staticmethod
    async def get_payment(db: AsyncSession, school_id: UUID, payment_id: UUID) -> Optional[Payment]:
        result = await db.execute(
            select(Payment).where(Payment.id == payment_id, Payment.school_id == school_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_payment_by_idempotency_key(
        db: AsyncSession,
        school_id: UUID,
        enrollment_id: UUID,
        idempotency_key: str,
    ) -> Optional[Payment]:
        result = await db.execute(
            select(Payment)
            .where(
                Payment.school_id == school_id,
                Payment.enrollment_id == enrollment_id,
                Payment.idempotency_key == idempotency_key,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def record_payment(
        db: AsyncSession,
        school_id: UUID,
        data: PaymentCreate,
        recorded_by: Optional[UUID] = None,
    ) -> PaymentResult:
        """
        Record a payment against an enrollment.

        Inside one transaction: lock the enrollment, insert the payment,
        credit the balance and apply the debt delta. A retry with the same
        idempotency key returns the stored payment without side effects,
        including when two submissions race on the insert.

        Raises:
            ValidationFailed: Unsupported kind or inconsistent units
            NotFound: Enrollment absent or in another school
        """
        if data.kind not in RECORDABLE_KINDS:
            raise ValidationFailed(f"Payments of kind '{data.kind.value}' cannot be recorded against an enrollment")
        if data.units is not None and data.units > 0 and data.unit_type is None:
            raise ValidationFailed("unit_type is required when units are given")

        enrollment_id = data.enrollment_id
        key = (data.idempotency_key or "").strip() or None

        if key:
            existing = await PaymentService.get_payment_by_idempotency_key(db, school_id, enrollment_id, key)
            if existing:
                return PaymentService._replay(existing)

        enrollment = await LedgerService.lock_enrollment(db, school_id, enrollment_id)
        if not enrollment:
            raise NotFound("Enrollment not found")

        student_id = enrollment.student_id
        class_id = enrollment.class_id

        expected_price = data.expected_price if data.expected_price is not None else data.amount
        taken = data.taken if data.taken is not None else data.amount
        # Without an explicit expected price the payment books no debt
        debt_delta = taken - data.expected_price if data.expected_price is not None else ZERO
        credit = derive_session_credit(
            enrollment.pricing_snapshot,
            amount=data.amount,
            taken=data.taken,
            units=data.units,
            unit_type=data.unit_type,
            places=settings.SESSION_CREDIT_PLACES,
        )

        payment = Payment(
            school_id=school_id,
            class_id=class_id,
            student_id=student_id,
            enrollment_id=enrollment_id,
            amount=data.amount,
            kind=data.kind,
            method=data.method,
            note=data.note,
            unit_type=data.unit_type,
            units=data.units,
            expected_price=expected_price,
            taken=taken,
            debt_delta=debt_delta,
            session_credit=credit,
            idempotency_key=key,
            recorded_by=recorded_by,
        )
        db.add(payment)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            if not key:
                raise
            existing = await PaymentService.get_payment_by_idempotency_key(db, school_id, enrollment_id, key)
            if not existing:
                raise
            return PaymentService._replay(existing)

        await LedgerService.apply_enrollment_event(
            db, school_id, enrollment_id, EnrollmentDelta(balance=credit)
        )
        await LedgerService.apply_debt_delta(db, school_id, student_id, debt_delta)
        await db.commit()

        logger.info(
            "Payment recorded",
            extra={
                "school_id": str(school_id),
                "payment_id": str(payment.id),
                "enrollment_id": str(enrollment_id),
                "kind": data.kind.value,
                "session_credit": str(credit),
                "debt_delta": str(debt_delta),
            },
        )
        await ActivityLogSink.emit(
            db,
            school_id=school_id,
            actor_id=recorded_by,
            action="payment_recorded",
            description=f"Payment of {taken} {settings.SETTLEMENT_CURRENCY} recorded",
            details={
                "enrollment_id": str(enrollment_id),
                "amount": str(data.amount),
                "taken": str(taken),
                "session_credit": str(credit),
            },
            entity_type="payment",
            entity_id=payment.id,
        )
        return PaymentResult(payment=payment, session_credit=credit, replayed=False)

    @staticmethod
    def _replay(payment: Payment) -> PaymentResult:
        logger.info(
            "Payment replayed",
            extra={
                "payment_id": str(payment.id),
                "enrollment_id": str(payment.enrollment_id),
                "idempotency_key": payment.idempotency_key,
            },
        )
        return PaymentResult(payment=payment, session_credit=Decimal(payment.session_credit), replayed=True)

    @staticmethod
    async def list_payments(
        db: AsyncSession,
        school_id: UUID,
        enrollment_id: Optional[UUID] = None,
        student_id: Optional[UUID] = None,
        class_id: Optional[UUID] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Payment]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        stmt = select(Payment).where(Payment.school_id == school_id)
        if enrollment_id:
            stmt = stmt.where(Payment.enrollment_id == enrollment_id)
        if student_id:
            stmt = stmt.where(Payment.student_id == student_id)
        if class_id:
            stmt = stmt.where(Payment.class_id == class_id)
        stmt = stmt.order_by(Payment.created_at.desc()).offset(max(skip, 0)).limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_student_debt(db: AsyncSession, school_id: UUID, student_id: UUID):
        """Current debt for a student; zero when the student never paid."""
        if not await EnrollmentService.get_student(db, school_id, student_id):
            raise NotFound("Student not found")
        financial = await LedgerService.get_student_financial(db, school_id, student_id)
        if not financial:
            return ZERO, None
        return Decimal(financial.debt), financial.updated_at

    @staticmethod
    async def adjust_student_debt(
        db: AsyncSession,
        school_id: UUID,
        student_id: UUID,
        delta: Decimal,
        reason: str,
        note: Optional[str] = None,
        actor_id: Optional[UUID] = None,
    ) -> DebtAdjustment:
        """Manual correction; recorded as its own delta so the debt stays replayable."""
        if delta == 0:
            raise ValidationFailed("Adjustment must be non-zero")
        if not await EnrollmentService.get_student(db, school_id, student_id):
            raise NotFound("Student not found")

        adjustment = DebtAdjustment(
            school_id=school_id,
            student_id=student_id,
            delta=delta,
            reason=reason,
            note=note,
            created_by=actor_id,
        )
        db.add(adjustment)
        await LedgerService.apply_debt_delta(db, school_id, student_id, delta)
        await db.commit()

        logger.info(
            "Student debt adjusted",
            extra={"school_id": str(school_id), "student_id": str(student_id), "delta": str(delta)},
        )
        await ActivityLogSink.emit(
            db,
            school_id=school_id,
            actor_id=actor_id,
            action="debt_adjusted",
            description=f"Debt adjusted by {delta} {settings.SETTLEMENT_CURRENCY}: {reason}",
            details={"student_id": str(student_id), "delta": str(delta)},
            entity_type="student",
            entity_id=student_id,
        )
        return adjustment

    @staticmethod
    async def pay_student_debt(
        db: AsyncSession,
        school_id: UUID,
        student_id: UUID,
        amount: Decimal,
        note: Optional[str] = None,
        actor_id: Optional[UUID] = None,
    ) -> Payment:
        """
        Settle what a student owes (positive debt). The settled part is capped
        at the outstanding debt and recorded as a class-less debt payment
        carrying a negative delta; it credits no sessions.

        Raises:
            Conflict: The student owes nothing
        """
        if amount <= 0:
            raise ValidationFailed("Amount must be positive")
        if not await EnrollmentService.get_student(db, school_id, student_id):
            raise NotFound("Student not found")

        financial = await LedgerService.get_student_financial(db, school_id, student_id)
        outstanding = Decimal(financial.debt) if financial else ZERO
        if outstanding <= 0:
            raise Conflict("Student has no outstanding debt")

        settled = min(amount, outstanding)
        payment = Payment(
            school_id=school_id,
            class_id=None,
            student_id=student_id,
            enrollment_id=None,
            amount=settled,
            kind=PaymentKind.DEBT_PAYMENT,
            method=PaymentMethod.CASH,
            note=note,
            expected_price=settled,
            taken=settled,
            debt_delta=-settled,
            session_credit=ZERO,
            recorded_by=actor_id,
        )
        db.add(payment)
        await LedgerService.apply_debt_delta(db, school_id, student_id, -settled)
        await db.commit()

        logger.info(
            "Student debt paid",
            extra={"school_id": str(school_id), "student_id": str(student_id), "settled": str(settled)},
        )
        await ActivityLogSink.emit(
            db,
            school_id=school_id,
            actor_id=actor_id,
            action="debt_paid",
            description=f"Debt payment of {settled} {settings.SETTLEMENT_CURRENCY}",
            details={"student_id": str(student_id), "settled": str(settled)},
            entity_type="payment",
            entity_id=payment.id,
        )
        return payment
