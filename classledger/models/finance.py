"""Domain 4: School Finance (manual transactions, payouts, monthly summaries)"""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from classledger.models.base import BaseModel, SchoolScopedMixin, enum_column_type
from classledger.models.enums import (
    PaymentMethod,
    PayoutStatus,
    SummaryState,
    TeacherCutMode,
    TransactionType,
)
from classledger.utils.time import get_utc_now


class ManualTransaction(BaseModel, SchoolScopedMixin):
    """Income or expense entered by hand (rent, supplies, grants)."""
    __tablename__ = "manual_transactions"
    __table_args__ = (
        Index("ix_manual_transactions_school_date", "school_id", "date"),
    )

    type = Column(enum_column_type(TransactionType, "transaction_type"), nullable=False)
    category = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    receipt_number = Column(String(100), nullable=True)
    date = Column(DateTime, default=get_utc_now, nullable=False)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class TeacherPayout(BaseModel, SchoolScopedMixin):
    """What a teacher earned from one class in one month, and how much of it was paid."""
    __tablename__ = "teacher_payouts"
    __table_args__ = (
        UniqueConstraint("school_id", "teacher_id", "class_id", "year", "month", name="uq_teacher_payouts_period"),
        Index("ix_teacher_payouts_school_period", "school_id", "year", "month"),
    )

    teacher_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    class_id = Column(Uuid(as_uuid=True), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)

    calculated_income = Column(Numeric(12, 2), default=0, nullable=False)
    paid_amount = Column(Numeric(12, 2), default=0, nullable=False)
    remaining_debt = Column(Numeric(12, 2), default=0, nullable=False)
    status = Column(enum_column_type(PayoutStatus, "payout_status"), default=PayoutStatus.PENDING, nullable=False)

    # Class terms at calculation time
    class_name = Column(String(255), nullable=True)
    class_income = Column(Numeric(12, 2), default=0, nullable=False)
    cut_mode = Column(enum_column_type(TeacherCutMode, "teacher_cut_mode"), nullable=True)
    cut_value = Column(Numeric(12, 2), nullable=True)

    entries = relationship(
        "TeacherPayoutEntry",
        back_populates="payout",
        cascade="all, delete-orphan",
        order_by="TeacherPayoutEntry.paid_at",
    )

    def apply_payment(self, amount) -> None:
        """Move money from remaining to paid and refresh the status."""
        self.paid_amount = (self.paid_amount or 0) + amount
        self.remaining_debt = max(self.calculated_income - self.paid_amount, 0)
        if self.paid_amount <= 0:
            self.status = PayoutStatus.PENDING
        elif self.remaining_debt > 0:
            self.status = PayoutStatus.PARTIAL
        else:
            self.status = PayoutStatus.PAID


class TeacherPayoutEntry(BaseModel):
    """A single cash hand-over against a teacher payout."""
    __tablename__ = "teacher_payout_entries"

    payout_id = Column(Uuid(as_uuid=True), ForeignKey("teacher_payouts.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(enum_column_type(PaymentMethod, "payment_method"), default=PaymentMethod.CASH, nullable=False)
    note = Column(Text, nullable=True)
    paid_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    paid_at = Column(DateTime, default=get_utc_now, nullable=False)

    payout = relationship("TeacherPayout", back_populates="entries")


class EmployeeSalaryTransaction(BaseModel, SchoolScopedMixin):
    """Salary paid to non-teaching staff for a month."""
    __tablename__ = "employee_salary_transactions"
    __table_args__ = (
        Index("ix_employee_salaries_school_period", "school_id", "year", "month"),
    )

    employee_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    calculated_salary = Column(Numeric(12, 2), default=0, nullable=False)
    paid_amount = Column(Numeric(12, 2), default=0, nullable=False)
    remaining = Column(Numeric(12, 2), default=0, nullable=False)
    payment_method = Column(enum_column_type(PaymentMethod, "payment_method"), default=PaymentMethod.CASH, nullable=False)
    transaction_date = Column(DateTime, default=get_utc_now, nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class MonthlyFinancialSummary(BaseModel, SchoolScopedMixin):
    """
    Per-month totals. While ``state`` is live the row is a cache of the last
    recalculation; once frozen it is the authoritative, read-only figure.
    """
    __tablename__ = "monthly_financial_summaries"
    __table_args__ = (
        UniqueConstraint("school_id", "year", "month", name="uq_monthly_summaries_period"),
    )

    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)

    student_income = Column(Numeric(14, 2), default=0, nullable=False)
    student_payment_count = Column(Integer, default=0, nullable=False)
    manual_income = Column(Numeric(14, 2), default=0, nullable=False)
    total_income = Column(Numeric(14, 2), default=0, nullable=False)
    total_expenses = Column(Numeric(14, 2), default=0, nullable=False)
    teacher_earnings_calculated = Column(Numeric(14, 2), default=0, nullable=False)
    teacher_payouts_paid = Column(Numeric(14, 2), default=0, nullable=False)
    teacher_count = Column(Integer, default=0, nullable=False)
    employee_salaries_calculated = Column(Numeric(14, 2), default=0, nullable=False)
    employee_salaries_paid = Column(Numeric(14, 2), default=0, nullable=False)
    employee_count = Column(Integer, default=0, nullable=False)
    total_student_debt = Column(Numeric(14, 2), default=0, nullable=False)
    net_balance = Column(Numeric(14, 2), default=0, nullable=False)

    state = Column(enum_column_type(SummaryState, "summary_state"), default=SummaryState.LIVE, nullable=False)
    last_calculated = Column(DateTime, nullable=True)
    frozen_at = Column(DateTime, nullable=True)
    frozen_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @property
    def is_frozen(self) -> bool:
        return self.state == SummaryState.FROZEN
