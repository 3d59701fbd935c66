"""Domain 2: Classes and Enrollments"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Boolean,
    Uuid,
    text,
)
from sqlalchemy.orm import relationship

from classledger.models.base import BaseModel, SchoolScopedMixin, enum_column_type
from classledger.models.enums import ClassStatus, EnrollmentStatus, PricingModel, TeacherCutMode
from classledger.utils.time import get_utc_now


class Class(BaseModel, SchoolScopedMixin):
    """
    A taught class and its current billing terms.
    Scheduling, rooms and content live elsewhere; only the fields the
    settlement engine reads are modelled here.
    """
    __tablename__ = "classes"

    name = Column(String(255), nullable=False)
    teacher_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(enum_column_type(ClassStatus, "class_status"), default=ClassStatus.ACTIVE, nullable=False, index=True)

    # Pricing (current terms; enrollments keep their own snapshot)
    payment_model = Column(enum_column_type(PricingModel, "pricing_model"), nullable=False)
    session_price = Column(Numeric(12, 2), nullable=True)
    cycle_size = Column(Integer, nullable=True)
    cycle_price = Column(Numeric(12, 2), nullable=True)
    absence_rule = Column(Boolean, default=False, nullable=False)

    # Teacher compensation
    teacher_cut_mode = Column(
        enum_column_type(TeacherCutMode, "teacher_cut_mode"),
        default=TeacherCutMode.PERCENTAGE,
        nullable=False,
    )
    teacher_cut_value = Column(Numeric(12, 2), default=0, nullable=False)

    school = relationship("School", back_populates="classes")
    teacher = relationship("User", foreign_keys=[teacher_id])
    enrollments = relationship("Enrollment", back_populates="class_")

    def __repr__(self) -> str:
        return f"<Class {self.name}>"


class Enrollment(BaseModel, SchoolScopedMixin):
    """
    One student's relationship to one class.

    ``balance`` is the running count of prepaid sessions (negative when the
    student has attended more than they paid for). Balance and counters are
    only ever changed through LedgerService.apply_enrollment_event.
    """
    __tablename__ = "enrollments"
    __table_args__ = (
        CheckConstraint("attended_count >= 0", name="ck_enrollments_attended_non_negative"),
        CheckConstraint("absent_count >= 0", name="ck_enrollments_absent_non_negative"),
        Index(
            "uq_enrollments_active_student_class",
            "student_id",
            "class_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_enrollments_school_class_status", "school_id", "class_id", "status"),
        Index("ix_enrollments_school_student_status", "school_id", "student_id", "status"),
    )

    student_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    class_id = Column(Uuid(as_uuid=True), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(
        enum_column_type(EnrollmentStatus, "enrollment_status"),
        default=EnrollmentStatus.ACTIVE,
        nullable=False,
    )
    enrolled_at = Column(DateTime, default=get_utc_now, nullable=False)

    # Pricing snapshot, written once at creation
    pricing_model = Column(enum_column_type(PricingModel, "pricing_model"), nullable=False)
    snapshot_session_price = Column(Numeric(12, 2), nullable=True)
    snapshot_cycle_size = Column(Integer, nullable=True)
    snapshot_cycle_price = Column(Numeric(12, 2), nullable=True)

    # Ledger projection
    balance = Column(Numeric(12, 4), default=0, nullable=False)
    attended_count = Column(Integer, default=0, nullable=False)
    absent_count = Column(Integer, default=0, nullable=False)
    last_attendance_date = Column(Date, nullable=True)

    student = relationship("User", foreign_keys=[student_id])
    class_ = relationship("Class", back_populates="enrollments")

    @property
    def pricing_snapshot(self):
        """Immutable view of the billing terms captured at enrollment."""
        from classledger.services.pricing import PricingSnapshot

        return PricingSnapshot(
            model=self.pricing_model,
            session_price=self.snapshot_session_price,
            cycle_size=self.snapshot_cycle_size,
            cycle_price=self.snapshot_cycle_price,
        )

    @property
    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Enrollment {self.student_id} -> {self.class_id} ({self.status})>"
