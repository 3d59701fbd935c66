from typing import Optional
from pydantic import BaseModel, Field, ConfigDict
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from classledger.models.enums import PaymentMethod, PayoutStatus, SummaryState, TeacherCutMode, TransactionType

ZERO = Decimal("0")


class MonthlyFinancials(BaseModel):
    """
    A month's totals. ``data_source`` says whether the figures were just
    recomputed from the ledger (live) or read from a frozen snapshot.
    """
    year: int
    month: int

    student_income: Decimal = ZERO
    student_payment_count: int = 0
    manual_income: Decimal = ZERO
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    teacher_earnings_calculated: Decimal = ZERO
    teacher_payouts_paid: Decimal = ZERO
    teacher_count: int = 0
    employee_salaries_calculated: Decimal = ZERO
    employee_salaries_paid: Decimal = ZERO
    employee_count: int = 0
    total_student_debt: Decimal = ZERO
    net_balance: Decimal = ZERO

    state: SummaryState = SummaryState.LIVE
    data_source: SummaryState = SummaryState.LIVE
    last_calculated: Optional[datetime] = None
    frozen_at: Optional[datetime] = None
    frozen_by: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True)

    def totals(self) -> dict:
        """Figures only, without state metadata."""
        return self.model_dump(
            exclude={"state", "data_source", "last_calculated", "frozen_at", "frozen_by"}
        )


class ManualTransactionCreate(BaseModel):
    type: TransactionType
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    receipt_number: Optional[str] = Field(None, max_length=100)
    date: Optional[datetime] = None


class ManualTransactionResponse(BaseModel):
    id: UUID
    type: TransactionType
    category: str
    description: Optional[str] = None
    amount: Decimal
    receipt_number: Optional[str] = None
    date: datetime
    created_by: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True)


class TeacherEarning(BaseModel):
    teacher_id: UUID
    class_id: UUID
    class_name: str
    class_income: Decimal
    cut_mode: TeacherCutMode
    cut_value: Decimal
    earnings: Decimal


class TeacherPayoutCreate(BaseModel):
    teacher_id: UUID
    class_id: UUID
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    method: PaymentMethod = PaymentMethod.CASH
    note: Optional[str] = None


class TeacherPayoutResponse(BaseModel):
    id: UUID
    teacher_id: UUID
    class_id: UUID
    year: int
    month: int
    class_name: Optional[str] = None
    class_income: Decimal
    cut_mode: Optional[TeacherCutMode] = None
    cut_value: Optional[Decimal] = None
    calculated_income: Decimal
    paid_amount: Decimal
    remaining_debt: Decimal
    status: PayoutStatus

    model_config = ConfigDict(from_attributes=True)


class EmployeeSalaryCreate(BaseModel):
    employee_id: UUID
    calculated_salary: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    paid_amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    payment_method: PaymentMethod = PaymentMethod.CASH
    transaction_date: Optional[datetime] = None
    notes: Optional[str] = None


class EmployeeSalaryResponse(BaseModel):
    id: UUID
    employee_id: UUID
    year: int
    month: int
    calculated_salary: Decimal
    paid_amount: Decimal
    remaining: Decimal
    payment_method: PaymentMethod
    transaction_date: datetime
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
