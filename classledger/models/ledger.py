"""Domain 3: Ledger Store (payments, attendance, student debt)"""

from sqlalchemy import (
    Column,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from classledger.models.base import BaseModel, SchoolScopedMixin, enum_column_type
from classledger.models.enums import AttendanceStatus, PaymentKind, PaymentMethod, UnitType


class Payment(BaseModel, SchoolScopedMixin):
    """
    Immutable audit record of money received.

    ``amount`` is the expected price of what was purchased; ``taken`` is the
    cash actually handed over. ``session_credit`` is what this payment added
    to the enrollment balance, kept so a replayed submission can report it
    and an audit can re-derive the balance.
    """
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("enrollment_id", "idempotency_key", name="uq_payments_enrollment_idempotency_key"),
        Index("ix_payments_school_enrollment_created", "school_id", "enrollment_id", "created_at"),
        Index("ix_payments_school_student_created", "school_id", "student_id", "created_at"),
        Index("ix_payments_school_class_created", "school_id", "class_id", "created_at"),
    )

    class_id = Column(Uuid(as_uuid=True), ForeignKey("classes.id", ondelete="SET NULL"), nullable=True)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    enrollment_id = Column(Uuid(as_uuid=True), ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=True)

    amount = Column(Numeric(12, 2), nullable=False)
    kind = Column(enum_column_type(PaymentKind, "payment_kind"), nullable=False, index=True)
    method = Column(enum_column_type(PaymentMethod, "payment_method"), default=PaymentMethod.CASH, nullable=False)
    note = Column(Text, nullable=True)

    unit_type = Column(enum_column_type(UnitType, "unit_type"), nullable=True)
    units = Column(Numeric(12, 4), nullable=True)
    expected_price = Column(Numeric(12, 2), nullable=False)
    taken = Column(Numeric(12, 2), nullable=False)
    debt_delta = Column(Numeric(12, 2), default=0, nullable=False)
    session_credit = Column(Numeric(12, 4), default=0, nullable=False)

    idempotency_key = Column(String(128), nullable=True)
    recorded_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    enrollment = relationship("Enrollment")

    def __repr__(self) -> str:
        return f"<Payment {self.kind} {self.amount}>"


class Attendance(BaseModel, SchoolScopedMixin):
    """One mark per (enrollment, UTC calendar date)."""
    __tablename__ = "attendance"
    __table_args__ = (
        UniqueConstraint("enrollment_id", "date", name="uq_attendance_enrollment_date"),
        Index("ix_attendance_school_class_date", "school_id", "class_id", "date"),
        Index("ix_attendance_school_student_date", "school_id", "student_id", "date"),
    )

    class_id = Column(Uuid(as_uuid=True), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    enrollment_id = Column(Uuid(as_uuid=True), ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    status = Column(enum_column_type(AttendanceStatus, "attendance_status"), nullable=False)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    def __repr__(self) -> str:
        return f"<Attendance {self.enrollment_id} {self.date} {self.status}>"


class StudentFinancial(BaseModel, SchoolScopedMixin):
    """
    Running debt aggregate per student.
    Positive debt is owed by the student to the school; negative is owed to the student.
    """
    __tablename__ = "student_financials"
    __table_args__ = (
        UniqueConstraint("school_id", "student_id", name="uq_student_financials_school_student"),
    )

    student_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    debt = Column(Numeric(12, 2), default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<StudentFinancial {self.student_id} debt={self.debt}>"


class DebtAdjustment(BaseModel, SchoolScopedMixin):
    """Manual debt correction, kept as a delta so the aggregate stays replayable."""
    __tablename__ = "debt_adjustments"
    __table_args__ = (
        Index("ix_debt_adjustments_school_student_created", "school_id", "student_id", "created_at"),
    )

    student_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    delta = Column(Numeric(12, 2), nullable=False)
    reason = Column(String(255), nullable=False)
    note = Column(Text, nullable=True)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
