"""
Ledger apply functions.

Enrollment balance, attendance counters and student debt are
prematerialized projections of the payment and attendance events. Every
change to them goes through this module, as a single additive UPDATE (or
upsert) evaluated by the database, so concurrent writers never lose each
other's increments.
"""

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from classledger.core.exceptions import NotFound
from classledger.core.logging import get_logger
from classledger.models.academic import Enrollment
from classledger.models.ledger import DebtAdjustment, Payment, StudentFinancial
from classledger.utils.sql import upsert_insert
from classledger.utils.time import get_utc_now

logger = get_logger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class EnrollmentDelta:
    """Change to an enrollment's projection caused by one ledger event."""

    balance: Decimal = ZERO
    attended: int = 0
    absent: int = 0

    @property
    def is_noop(self) -> bool:
        return self.balance == 0 and self.attended == 0 and self.absent == 0


@dataclass(frozen=True)
class DebtRebuild:
    student_id: UUID
    stored_debt: Decimal
    replayed_debt: Decimal

    @property
    def drift(self) -> Decimal:
        return self.stored_debt - self.replayed_debt


class LedgerService:
    @staticmethod
    async def lock_enrollment(
        db: AsyncSession,
        school_id: UUID,
        enrollment_id: UUID,
    ) -> Optional[Enrollment]:
        """
        Read an enrollment fresh and hold its row lock until the transaction
        ends (SELECT .. FOR UPDATE; a no-op on SQLite, which serializes writers).
        """
        result = await db.execute(
            select(Enrollment)
            .where(Enrollment.id == enrollment_id, Enrollment.school_id == school_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def apply_enrollment_event(
        db: AsyncSession,
        school_id: UUID,
        enrollment_id: UUID,
        delta: EnrollmentDelta,
        attendance_date: Optional[date] = None,
    ) -> None:
        """
        Apply one event's delta to an enrollment in a single UPDATE.

        Column expressions are additive (``balance = balance + :delta``) and
        ``last_attendance_date`` only ever moves forward. Does not commit.
        """
        values = {}
        if delta.balance:
            values["balance"] = Enrollment.balance + delta.balance
        if delta.attended:
            values["attended_count"] = Enrollment.attended_count + delta.attended
        if delta.absent:
            values["absent_count"] = Enrollment.absent_count + delta.absent
        if attendance_date is not None:
            values["last_attendance_date"] = case(
                (Enrollment.last_attendance_date.is_(None), attendance_date),
                (Enrollment.last_attendance_date < attendance_date, attendance_date),
                else_=Enrollment.last_attendance_date,
            )
        if not values:
            return
        values["updated_at"] = get_utc_now()

        result = await db.execute(
            update(Enrollment)
            .where(Enrollment.id == enrollment_id, Enrollment.school_id == school_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFound("Enrollment not found")

    @staticmethod
    async def apply_debt_delta(
        db: AsyncSession,
        school_id: UUID,
        student_id: UUID,
        delta: Decimal,
    ) -> None:
        """
        Add ``delta`` to a student's debt, creating the aggregate row on first
        touch. Applied even when zero so ``updated_at`` tracks the latest
        payment. Does not commit.
        """
        now = get_utc_now()
        table = StudentFinancial.__table__
        stmt = upsert_insert(db, StudentFinancial).values(
            id=uuid.uuid4(),
            school_id=school_id,
            student_id=student_id,
            debt=delta,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.school_id, table.c.student_id],
            set_={"debt": table.c.debt + stmt.excluded.debt, "updated_at": now},
        )
        await db.execute(stmt)

    @staticmethod
    async def get_student_financial(
        db: AsyncSession,
        school_id: UUID,
        student_id: UUID,
    ) -> Optional[StudentFinancial]:
        result = await db.execute(
            select(StudentFinancial)
            .where(StudentFinancial.school_id == school_id, StudentFinancial.student_id == student_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def replay_student_debt(db: AsyncSession, school_id: UUID, student_id: UUID) -> Decimal:
        """Sum of every debt delta ever recorded for a student."""
        payments = await db.execute(
            select(func.coalesce(func.sum(Payment.debt_delta), 0))
            .where(Payment.school_id == school_id, Payment.student_id == student_id)
        )
        adjustments = await db.execute(
            select(func.coalesce(func.sum(DebtAdjustment.delta), 0))
            .where(DebtAdjustment.school_id == school_id, DebtAdjustment.student_id == student_id)
        )
        total = Decimal(str(payments.scalar_one())) + Decimal(str(adjustments.scalar_one()))
        return total.quantize(CENT)

    @staticmethod
    async def rebuild_student_debt(db: AsyncSession, school_id: UUID, student_id: UUID) -> DebtRebuild:
        """
        Audit/repair: recompute a student's debt from recorded deltas and
        overwrite the aggregate with it. Commits.
        """
        financial = await LedgerService.get_student_financial(db, school_id, student_id)
        stored = Decimal(financial.debt) if financial else ZERO
        replayed = await LedgerService.replay_student_debt(db, school_id, student_id)

        if financial is None and replayed == 0:
            return DebtRebuild(student_id=student_id, stored_debt=stored, replayed_debt=replayed)

        now = get_utc_now()
        table = StudentFinancial.__table__
        stmt = upsert_insert(db, StudentFinancial).values(
            id=uuid.uuid4(),
            school_id=school_id,
            student_id=student_id,
            debt=replayed,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.school_id, table.c.student_id],
            set_={"debt": stmt.excluded.debt, "updated_at": now},
        )
        await db.execute(stmt)
        await db.commit()

        rebuild = DebtRebuild(student_id=student_id, stored_debt=stored, replayed_debt=replayed)
        if rebuild.drift != 0:
            logger.warning(
                "Student debt drift repaired",
                extra={
                    "school_id": str(school_id),
                    "student_id": str(student_id),
                    "stored_debt": str(stored),
                    "replayed_debt": str(replayed),
                },
            )
        return rebuild
