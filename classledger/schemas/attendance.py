from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict
from uuid import UUID
from datetime import datetime, date
from decimal import Decimal

from classledger.models.enums import AttendanceStatus
from classledger.schemas.enrollment import RosterItem


class AttendanceMark(BaseModel):
    enrollment_id: UUID
    # Free-form: YYYY-MM-DD or an ISO datetime, normalized to a UTC date by the service
    date: str = Field(..., min_length=1, max_length=64)
    status: AttendanceStatus


class AttendanceUndo(BaseModel):
    enrollment_id: UUID
    date: str = Field(..., min_length=1, max_length=64)


class AttendanceResponse(BaseModel):
    id: UUID
    enrollment_id: UUID
    class_id: UUID
    student_id: UUID
    date: date
    status: AttendanceStatus
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CountersDelta(BaseModel):
    attended: int = 0
    absent: int = 0
    balance: Decimal = Decimal("0")


class AttendanceChangeResponse(BaseModel):
    attendance: Optional[AttendanceResponse] = None
    created: bool = False
    undone: bool = False
    delta: CountersDelta
    class_id: UUID
    date: date
    roster: List[RosterItem]
