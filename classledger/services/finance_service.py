"""
Monthly Aggregator & Freezer, plus the finance records it aggregates.

A month is either live (recomputed from the ledger on every read) or frozen
(a stored snapshot that reads return verbatim). Freezing is a one-way
transition; a second freeze of the same month is a conflict.
"""

import uuid
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from classledger.config import settings
from classledger.core.exceptions import Conflict, NotFound, ValidationFailed
from classledger.core.logging import get_logger
from classledger.models.academic import Class
from classledger.models.enums import (
    ClassStatus,
    PaymentKind,
    PaymentMethod,
    SummaryState,
    TeacherCutMode,
    TransactionType,
)
from classledger.models.finance import (
    EmployeeSalaryTransaction,
    ManualTransaction,
    MonthlyFinancialSummary,
    TeacherPayout,
    TeacherPayoutEntry,
)
from classledger.models.ledger import Payment, StudentFinancial
from classledger.schemas.finance import (
    EmployeeSalaryCreate,
    ManualTransactionCreate,
    MonthlyFinancials,
    TeacherEarning,
    TeacherPayoutCreate,
)
from classledger.services.activity_service import ActivityLogSink
from classledger.utils.sql import upsert_insert
from classledger.utils.time import get_utc_now, month_bounds

logger = get_logger(__name__)

ZERO = Decimal("0")
CENTS = Decimal("0.01")
MIN_YEAR = 2000
MAX_YEAR = 2100


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS)


def validate_period(year: int, month: int) -> None:
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationFailed(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
    if not 1 <= month <= 12:
        raise ValidationFailed("Month must be between 1 and 12")


def teacher_cut(class_income: Decimal, mode: TeacherCutMode, value: Decimal) -> Decimal:
    """Teacher's share of a class's monthly income."""
    value = _money(value)
    if mode == TeacherCutMode.FIXED:
        return value
    return _money(class_income * value / 100)


class FinanceService:
    # ------------------------------------------------------------------
    # Live aggregation
    # ------------------------------------------------------------------

    @staticmethod
    async def calculate_teacher_earnings(
        db: AsyncSession,
        school_id: UUID,
        year: int,
        month: int,
    ) -> List[TeacherEarning]:
        """
        Per class with a teacher: income from the month's class payments and
        the teacher's cut of it. Archived classes appear only if they took
        money that month.
        """
        validate_period(year, month)
        start, end = month_bounds(year, month)

        income_rows = await db.execute(
            select(Payment.class_id, func.sum(Payment.amount))
            .where(
                Payment.school_id == school_id,
                Payment.class_id.is_not(None),
                Payment.kind != PaymentKind.DEBT_PAYMENT,
                Payment.created_at >= start,
                Payment.created_at < end,
            )
            .group_by(Payment.class_id)
        )
        income_by_class: Dict[UUID, Decimal] = {cid: _money(total) for cid, total in income_rows.all()}

        classes = await db.execute(
            select(Class)
            .where(Class.school_id == school_id, Class.teacher_id.is_not(None))
            .order_by(Class.name)
        )

        earnings = []
        for cls in classes.scalars().all():
            income = income_by_class.get(cls.id, ZERO)
            if cls.status != ClassStatus.ACTIVE and income == 0:
                continue
            earnings.append(
                TeacherEarning(
                    teacher_id=cls.teacher_id,
                    class_id=cls.id,
                    class_name=cls.name,
                    class_income=income,
                    cut_mode=cls.teacher_cut_mode,
                    cut_value=_money(cls.teacher_cut_value),
                    earnings=teacher_cut(income, cls.teacher_cut_mode, cls.teacher_cut_value),
                )
            )
        return earnings

    @staticmethod
    async def compute_live_month(
        db: AsyncSession,
        school_id: UUID,
        year: int,
        month: int,
    ) -> MonthlyFinancials:
        """
        Recompute a month's figures from the ledger. Never writes.

        Student income is cash taken on class payments (debt settlements
        excluded) created within the UTC month; teacher and employee figures
        come from the month's payout records; student debt is the school's
        current total.
        """
        validate_period(year, month)
        start, end = month_bounds(year, month)

        student = await db.execute(
            select(func.coalesce(func.sum(Payment.taken), 0), func.count(Payment.id)).where(
                Payment.school_id == school_id,
                Payment.class_id.is_not(None),
                Payment.kind != PaymentKind.DEBT_PAYMENT,
                Payment.created_at >= start,
                Payment.created_at < end,
            )
        )
        student_income, student_payment_count = student.one()

        manual_rows = await db.execute(
            select(ManualTransaction.type, func.sum(ManualTransaction.amount))
            .where(
                ManualTransaction.school_id == school_id,
                ManualTransaction.date >= start,
                ManualTransaction.date < end,
            )
            .group_by(ManualTransaction.type)
        )
        manual = {kind: _money(total) for kind, total in manual_rows.all()}

        payouts = await db.execute(
            select(TeacherPayout.teacher_id, func.sum(TeacherPayout.paid_amount))
            .where(
                TeacherPayout.school_id == school_id,
                TeacherPayout.year == year,
                TeacherPayout.month == month,
            )
            .group_by(TeacherPayout.teacher_id)
        )
        paid_by_teacher = {teacher_id: _money(total) for teacher_id, total in payouts.all()}

        earnings = await FinanceService.calculate_teacher_earnings(db, school_id, year, month)
        teacher_ids = set(paid_by_teacher) | {e.teacher_id for e in earnings}

        salaries = await db.execute(
            select(
                func.coalesce(func.sum(EmployeeSalaryTransaction.calculated_salary), 0),
                func.coalesce(func.sum(EmployeeSalaryTransaction.paid_amount), 0),
                func.count(distinct(EmployeeSalaryTransaction.employee_id)),
            ).where(
                EmployeeSalaryTransaction.school_id == school_id,
                EmployeeSalaryTransaction.year == year,
                EmployeeSalaryTransaction.month == month,
            )
        )
        salaries_calculated, salaries_paid, employee_count = salaries.one()

        debt = await db.execute(
            select(func.coalesce(func.sum(StudentFinancial.debt), 0)).where(
                StudentFinancial.school_id == school_id
            )
        )

        student_income = _money(student_income)
        manual_income = manual.get(TransactionType.INCOME, ZERO)
        expenses = manual.get(TransactionType.EXPENSE, ZERO)
        teacher_paid = sum(paid_by_teacher.values(), ZERO)
        employee_paid = _money(salaries_paid)

        return MonthlyFinancials(
            year=year,
            month=month,
            student_income=student_income,
            student_payment_count=student_payment_count,
            manual_income=manual_income,
            total_income=student_income + manual_income,
            total_expenses=expenses,
            teacher_earnings_calculated=sum((e.earnings for e in earnings), ZERO),
            teacher_payouts_paid=teacher_paid,
            teacher_count=len(teacher_ids),
            employee_salaries_calculated=_money(salaries_calculated),
            employee_salaries_paid=employee_paid,
            employee_count=employee_count,
            total_student_debt=_money(debt.scalar_one()),
            net_balance=student_income + manual_income - expenses - teacher_paid - employee_paid,
            state=SummaryState.LIVE,
            data_source=SummaryState.LIVE,
            last_calculated=get_utc_now(),
        )

    # ------------------------------------------------------------------
    # Stored summaries
    # ------------------------------------------------------------------

    @staticmethod
    async def get_summary_row(
        db: AsyncSession,
        school_id: UUID,
        year: int,
        month: int,
    ) -> Optional[MonthlyFinancialSummary]:
        result = await db.execute(
            select(MonthlyFinancialSummary)
            .where(
                MonthlyFinancialSummary.school_id == school_id,
                MonthlyFinancialSummary.year == year,
                MonthlyFinancialSummary.month == month,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _from_row(row: MonthlyFinancialSummary) -> MonthlyFinancials:
        figures = MonthlyFinancials.model_validate(row)
        return figures.model_copy(update={"data_source": row.state})

    @staticmethod
    async def get_monthly_summary(
        db: AsyncSession,
        school_id: UUID,
        year: int,
        month: int,
    ) -> MonthlyFinancials:
        """A frozen month is returned verbatim; anything else is computed live."""
        validate_period(year, month)
        row = await FinanceService.get_summary_row(db, school_id, year, month)
        if row is not None and row.is_frozen:
            return FinanceService._from_row(row)
        return await FinanceService.compute_live_month(db, school_id, year, month)

    @staticmethod
    async def _write_summary(
        db: AsyncSession,
        school_id: UUID,
        figures: MonthlyFinancials,
        state: SummaryState,
        frozen_by: Optional[UUID] = None,
    ) -> bool:
        """
        Upsert the summary row, only over a row that is still live.
        Returns False when the month was already frozen.
        """
        now = get_utc_now()
        values = figures.totals()
        values.update(
            state=state,
            last_calculated=figures.last_calculated or now,
            frozen_at=now if state == SummaryState.FROZEN else None,
            frozen_by=frozen_by,
            updated_at=now,
        )
        table = MonthlyFinancialSummary.__table__
        stmt = upsert_insert(db, MonthlyFinancialSummary).values(
            id=uuid.uuid4(),
            school_id=school_id,
            created_at=now,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.school_id, table.c.year, table.c.month],
            set_={name: stmt.excluded[name] for name in values if name not in ("year", "month")},
            where=table.c.state == SummaryState.LIVE,
        )
        result = await db.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def recalculate_month(
        db: AsyncSession,
        school_id: UUID,
        year: int,
        month: int,
    ) -> MonthlyFinancials:
        """Persist the live figures for a month that has not been frozen."""
        validate_period(year, month)
        row = await FinanceService.get_summary_row(db, school_id, year, month)
        if row is not None and row.is_frozen:
            raise Conflict(f"Month {month}/{year} is frozen and cannot be recalculated")

        figures = await FinanceService.compute_live_month(db, school_id, year, month)
        if not await FinanceService._write_summary(db, school_id, figures, SummaryState.LIVE):
            await db.rollback()
            raise Conflict(f"Month {month}/{year} is frozen and cannot be recalculated")
        await db.commit()
        return figures

    @staticmethod
    async def freeze_month(
        db: AsyncSession,
        school_id: UUID,
        year: int,
        month: int,
        actor_id: Optional[UUID] = None,
    ) -> MonthlyFinancials:
        """
        Transition a month from live to frozen.

        The figures are recomputed exactly as a live read would and stored
        with the frozen state in one guarded upsert, so of two concurrent
        freezes only one succeeds.

        Raises:
            Conflict: The month is already frozen
        """
        validate_period(year, month)
        row = await FinanceService.get_summary_row(db, school_id, year, month)
        if row is not None and row.is_frozen:
            logger.warning(
                "Freeze rejected: month already frozen",
                extra={"school_id": str(school_id), "year": year, "month": month},
            )
            raise Conflict(f"Month {month}/{year} is already frozen")

        figures = await FinanceService.compute_live_month(db, school_id, year, month)
        if not await FinanceService._write_summary(
            db, school_id, figures, SummaryState.FROZEN, frozen_by=actor_id
        ):
            await db.rollback()
            logger.warning(
                "Freeze rejected: concurrent freeze won",
                extra={"school_id": str(school_id), "year": year, "month": month},
            )
            raise Conflict(f"Month {month}/{year} is already frozen")
        await db.commit()

        logger.info(
            "Month frozen",
            extra={
                "school_id": str(school_id),
                "year": year,
                "month": month,
                "net_balance": str(figures.net_balance),
            },
        )
        await ActivityLogSink.emit(
            db,
            school_id=school_id,
            actor_id=actor_id,
            action="month_frozen",
            description=f"Froze finances for {month:02d}/{year} (net {figures.net_balance} {settings.SETTLEMENT_CURRENCY})",
            details={"year": year, "month": month, "net_balance": str(figures.net_balance)},
            entity_type="monthly_financial_summary",
        )

        frozen = await FinanceService.get_summary_row(db, school_id, year, month)
        return FinanceService._from_row(frozen)

    # ------------------------------------------------------------------
    # Manual transactions
    # ------------------------------------------------------------------

    @staticmethod
    async def add_manual_transaction(
        db: AsyncSession,
        school_id: UUID,
        data: ManualTransactionCreate,
        actor_id: Optional[UUID] = None,
    ) -> ManualTransaction:
        transaction = ManualTransaction(
            school_id=school_id,
            type=data.type,
            category=data.category,
            description=data.description,
            amount=data.amount,
            receipt_number=data.receipt_number,
            date=data.date or get_utc_now(),
            created_by=actor_id,
        )
        db.add(transaction)
        await db.commit()
        return transaction

    @staticmethod
    async def list_manual_transactions(
        db: AsyncSession,
        school_id: UUID,
        year: int,
        month: int,
        type: Optional[TransactionType] = None,
    ) -> List[ManualTransaction]:
        validate_period(year, month)
        start, end = month_bounds(year, month)
        stmt = select(ManualTransaction).where(
            ManualTransaction.school_id == school_id,
            ManualTransaction.date >= start,
            ManualTransaction.date < end,
        )
        if type is not None:
            stmt = stmt.where(ManualTransaction.type == type)
        result = await db.execute(stmt.order_by(ManualTransaction.date.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def delete_manual_transaction(db: AsyncSession, school_id: UUID, transaction_id: UUID) -> bool:
        result = await db.execute(
            select(ManualTransaction).where(
                ManualTransaction.id == transaction_id,
                ManualTransaction.school_id == school_id,
            )
        )
        transaction = result.scalar_one_or_none()
        if not transaction:
            raise NotFound("Transaction not found")
        await db.delete(transaction)
        await db.commit()
        return True

    # ------------------------------------------------------------------
    # Teacher payouts
    # ------------------------------------------------------------------

    @staticmethod
    async def ensure_teacher_payouts(
        db: AsyncSession,
        school_id: UUID,
        year: int,
        month: int,
    ) -> List[TeacherPayout]:
        """Create or refresh one payout row per (teacher, class) for the month."""
        earnings = await FinanceService.calculate_teacher_earnings(db, school_id, year, month)

        existing = await db.execute(
            select(TeacherPayout)
            .where(
                TeacherPayout.school_id == school_id,
                TeacherPayout.year == year,
                TeacherPayout.month == month,
            )
            .execution_options(populate_existing=True)
        )
        by_key = {(p.teacher_id, p.class_id): p for p in existing.scalars().all()}

        for earning in earnings:
            payout = by_key.get((earning.teacher_id, earning.class_id))
            if payout is None:
                payout = TeacherPayout(
                    school_id=school_id,
                    teacher_id=earning.teacher_id,
                    class_id=earning.class_id,
                    year=year,
                    month=month,
                    paid_amount=ZERO,
                )
                db.add(payout)
                by_key[(earning.teacher_id, earning.class_id)] = payout
            payout.class_name = earning.class_name
            payout.class_income = earning.class_income
            payout.cut_mode = earning.cut_mode
            payout.cut_value = earning.cut_value
            payout.calculated_income = earning.earnings
            payout.apply_payment(ZERO)

        await db.commit()
        return sorted(by_key.values(), key=lambda p: (p.class_name or "", str(p.teacher_id)))

    @staticmethod
    async def record_teacher_payout(
        db: AsyncSession,
        school_id: UUID,
        year: int,
        month: int,
        data: TeacherPayoutCreate,
        actor_id: Optional[UUID] = None,
    ) -> TeacherPayout:
        """
        Pay a teacher against the month's calculated earnings for a class.

        Raises:
            NotFound: No earnings for that teacher and class this month
            Conflict: Amount exceeds what is still owed
        """
        await FinanceService.ensure_teacher_payouts(db, school_id, year, month)

        result = await db.execute(
            select(TeacherPayout)
            .where(
                TeacherPayout.school_id == school_id,
                TeacherPayout.teacher_id == data.teacher_id,
                TeacherPayout.class_id == data.class_id,
                TeacherPayout.year == year,
                TeacherPayout.month == month,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        payout = result.scalar_one_or_none()
        if not payout:
            raise NotFound("No payout found for this teacher and class")

        remaining = _money(payout.remaining_debt)
        if data.amount > remaining:
            await db.rollback()
            raise Conflict(f"Payout of {data.amount} exceeds remaining teacher debt of {remaining}")

        db.add(
            TeacherPayoutEntry(
                payout_id=payout.id,
                amount=data.amount,
                method=data.method or PaymentMethod.CASH,
                note=data.note,
                paid_by=actor_id,
                paid_at=get_utc_now(),
            )
        )
        payout.apply_payment(data.amount)
        await db.commit()

        logger.info(
            "Teacher payout recorded",
            extra={
                "school_id": str(school_id),
                "teacher_id": str(data.teacher_id),
                "class_id": str(data.class_id),
                "amount": str(data.amount),
            },
        )
        await ActivityLogSink.emit(
            db,
            school_id=school_id,
            actor_id=actor_id,
            action="teacher_payout",
            description=f"Paid teacher {data.amount} {settings.SETTLEMENT_CURRENCY}",
            details={"teacher_id": str(data.teacher_id), "class_id": str(data.class_id)},
            entity_type="teacher_payout",
            entity_id=payout.id,
        )
        return payout

    # ------------------------------------------------------------------
    # Employee salaries
    # ------------------------------------------------------------------

    @staticmethod
    async def record_employee_salary(
        db: AsyncSession,
        school_id: UUID,
        year: int,
        month: int,
        data: EmployeeSalaryCreate,
        actor_id: Optional[UUID] = None,
    ) -> EmployeeSalaryTransaction:
        validate_period(year, month)
        transaction = EmployeeSalaryTransaction(
            school_id=school_id,
            employee_id=data.employee_id,
            year=year,
            month=month,
            calculated_salary=data.calculated_salary,
            paid_amount=data.paid_amount,
            remaining=max(data.calculated_salary - data.paid_amount, ZERO),
            payment_method=data.payment_method,
            transaction_date=data.transaction_date or get_utc_now(),
            notes=data.notes,
            created_by=actor_id,
        )
        db.add(transaction)
        await db.commit()
        return transaction

    @staticmethod
    async def list_employee_salaries(
        db: AsyncSession,
        school_id: UUID,
        year: int,
        month: int,
    ) -> List[EmployeeSalaryTransaction]:
        validate_period(year, month)
        result = await db.execute(
            select(EmployeeSalaryTransaction)
            .where(
                EmployeeSalaryTransaction.school_id == school_id,
                EmployeeSalaryTransaction.year == year,
                EmployeeSalaryTransaction.month == month,
            )
            .order_by(EmployeeSalaryTransaction.transaction_date.desc())
        )
        return list(result.scalars().all())
