from typing import Optional, List
from pydantic import BaseModel, ConfigDict
from uuid import UUID
from datetime import datetime, date
from decimal import Decimal

from classledger.models.enums import AttendanceStatus, EnrollmentStatus, PricingModel


class EnrollmentCreate(BaseModel):
    student_id: UUID
    class_id: UUID


class EnrollmentStatusUpdate(BaseModel):
    status: EnrollmentStatus


class PricingSnapshotResponse(BaseModel):
    model: PricingModel
    session_price: Optional[Decimal] = None
    cycle_size: Optional[int] = None
    cycle_price: Optional[Decimal] = None

    model_config = ConfigDict(from_attributes=True)


class EnrollmentResponse(BaseModel):
    id: UUID
    school_id: UUID
    student_id: UUID
    class_id: UUID
    status: EnrollmentStatus
    enrolled_at: datetime
    pricing_snapshot: PricingSnapshotResponse
    balance: Decimal
    attended_count: int
    absent_count: int
    last_attendance_date: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentTotals(BaseModel):
    """Sum of payment amounts on an enrollment, split by kind."""
    sessions: Decimal = Decimal("0")
    cycles: Decimal = Decimal("0")


class EnrollmentSummary(BaseModel):
    """
    Point-in-time reconciliation of what happened (counters) against what
    was paid (aggregated payments). Derived on read, never stored.
    """
    enrollment_id: UUID
    student_id: UUID
    class_id: UUID
    status: EnrollmentStatus
    pricing_snapshot: PricingSnapshotResponse
    absence_rule: bool
    balance: Decimal
    attended: int
    absent: int
    charged: int
    sessions_covered: int
    owed_sessions: int
    owed_amount: Optional[Decimal] = None
    payment_totals: PaymentTotals
    expected_balance: Decimal
    balance_drift: Decimal


class RosterItem(BaseModel):
    enrollment_id: UUID
    student_id: UUID
    student_name: str
    status_today: Optional[AttendanceStatus] = None
    balance: Decimal
    attended: int
    absent: int
    last_attendance_date: Optional[date] = None
    charged: int
    sessions_covered: int
    owed_sessions: int
    owed_amount: Optional[Decimal] = None
    payment_totals: PaymentTotals
    pricing_snapshot: PricingSnapshotResponse


class ClassRoster(BaseModel):
    class_id: UUID
    date: date
    items: List[RosterItem]
