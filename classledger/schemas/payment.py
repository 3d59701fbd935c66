from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from classledger.models.enums import PaymentKind, PaymentMethod, UnitType


class PaymentCreate(BaseModel):
    """
    A payment against an enrollment.

    ``amount`` is the price of what was bought; ``taken`` the cash actually
    received (defaults to ``amount``); ``expected_price`` defaults to
    ``amount``. Retries carrying the same ``idempotency_key`` return the
    original payment.
    """
    enrollment_id: UUID
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    kind: PaymentKind
    method: PaymentMethod = PaymentMethod.CASH
    note: Optional[str] = Field(None, max_length=2000)
    unit_type: Optional[UnitType] = None
    units: Optional[Decimal] = Field(None, ge=0)
    expected_price: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    taken: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    idempotency_key: Optional[str] = Field(None, max_length=128)

    @field_validator("idempotency_key")
    @classmethod
    def normalize_key(cls, v: Optional[str]) -> Optional[str]:
        """Blank keys mean no deduplication"""
        if v is None:
            return None
        v = v.strip()
        return v or None


class PaymentResponse(BaseModel):
    id: UUID
    school_id: UUID
    class_id: Optional[UUID] = None
    student_id: UUID
    enrollment_id: Optional[UUID] = None
    amount: Decimal
    kind: PaymentKind
    method: PaymentMethod
    note: Optional[str] = None
    unit_type: Optional[UnitType] = None
    units: Optional[Decimal] = None
    expected_price: Decimal
    taken: Decimal
    debt_delta: Decimal
    session_credit: Decimal
    idempotency_key: Optional[str] = None
    recorded_by: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentRecordResponse(BaseModel):
    payment: PaymentResponse
    session_credit: Decimal
    replayed: bool = False


class DebtAdjustmentCreate(BaseModel):
    student_id: UUID
    delta: Decimal = Field(..., max_digits=12, decimal_places=2)
    reason: str = Field(..., min_length=1, max_length=255)
    note: Optional[str] = None

    @field_validator("delta")
    @classmethod
    def non_zero(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("delta must be non-zero")
        return v


class DebtPaymentCreate(BaseModel):
    student_id: UUID
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    note: Optional[str] = None


class StudentDebtResponse(BaseModel):
    student_id: UUID
    debt: Decimal
    updated_at: Optional[datetime] = None


class DebtRebuildResponse(BaseModel):
    student_id: UUID
    stored_debt: Decimal
    replayed_debt: Decimal
    drift: Decimal
