from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from classledger.api import deps
from classledger.models.enums import TransactionType
from classledger.models.school import User
from classledger.services.finance_service import FinanceService
from classledger.schemas.finance import (
    EmployeeSalaryCreate,
    EmployeeSalaryResponse,
    ManualTransactionCreate,
    ManualTransactionResponse,
    MonthlyFinancials,
    TeacherEarning,
    TeacherPayoutCreate,
    TeacherPayoutResponse,
)
from classledger.schemas.responses import SuccessResponse

router = APIRouter()


# Monthly summaries

@router.get("/months/{year}/{month}", response_model=SuccessResponse[MonthlyFinancials])
async def get_monthly_summary(
    year: int,
    month: int,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Month totals: the frozen snapshot when there is one, live figures otherwise.
    """
    summary = await FinanceService.get_monthly_summary(db, current_user.school_id, year, month)
    return SuccessResponse(data=summary)


@router.post("/months/{year}/{month}/recalculate", response_model=SuccessResponse[MonthlyFinancials])
async def recalculate_month(
    year: int,
    month: int,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    summary = await FinanceService.recalculate_month(db, current_user.school_id, year, month)
    return SuccessResponse(data=summary, message="Month recalculated")


@router.post("/months/{year}/{month}/freeze", response_model=SuccessResponse[MonthlyFinancials])
async def freeze_month(
    year: int,
    month: int,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Lock a month's figures. Freezing a frozen month is a 409.
    """
    summary = await FinanceService.freeze_month(db, current_user.school_id, year, month, current_user.id)
    return SuccessResponse(data=summary, message=f"Month {month}/{year} has been frozen")


# Teacher payouts

@router.get("/months/{year}/{month}/teacher-earnings", response_model=SuccessResponse[List[TeacherEarning]])
async def get_teacher_earnings(
    year: int,
    month: int,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    earnings = await FinanceService.calculate_teacher_earnings(db, current_user.school_id, year, month)
    return SuccessResponse(data=earnings)


@router.get("/months/{year}/{month}/teacher-payouts", response_model=SuccessResponse[List[TeacherPayoutResponse]])
async def list_teacher_payouts(
    year: int,
    month: int,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    payouts = await FinanceService.ensure_teacher_payouts(db, current_user.school_id, year, month)
    return SuccessResponse(data=payouts)


@router.post(
    "/months/{year}/{month}/teacher-payouts",
    response_model=SuccessResponse[TeacherPayoutResponse],
    status_code=status.HTTP_201_CREATED,
)
async def record_teacher_payout(
    year: int,
    month: int,
    payout_in: TeacherPayoutCreate,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    payout = await FinanceService.record_teacher_payout(
        db, current_user.school_id, year, month, payout_in, current_user.id
    )
    return SuccessResponse(data=payout, message="Teacher payout recorded")


# Employee salaries

@router.get("/months/{year}/{month}/employee-salaries", response_model=SuccessResponse[List[EmployeeSalaryResponse]])
async def list_employee_salaries(
    year: int,
    month: int,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    salaries = await FinanceService.list_employee_salaries(db, current_user.school_id, year, month)
    return SuccessResponse(data=salaries)


@router.post(
    "/months/{year}/{month}/employee-salaries",
    response_model=SuccessResponse[EmployeeSalaryResponse],
    status_code=status.HTTP_201_CREATED,
)
async def record_employee_salary(
    year: int,
    month: int,
    salary_in: EmployeeSalaryCreate,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    salary = await FinanceService.record_employee_salary(
        db, current_user.school_id, year, month, salary_in, current_user.id
    )
    return SuccessResponse(data=salary, message="Salary recorded")


# Manual transactions

@router.post(
    "/manual-transactions",
    response_model=SuccessResponse[ManualTransactionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_manual_transaction(
    transaction_in: ManualTransactionCreate,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    transaction = await FinanceService.add_manual_transaction(
        db, current_user.school_id, transaction_in, current_user.id
    )
    return SuccessResponse(data=transaction, message="Transaction added")


@router.get("/manual-transactions", response_model=SuccessResponse[List[ManualTransactionResponse]])
async def list_manual_transactions(
    year: int = Query(...),
    month: int = Query(...),
    type: Optional[TransactionType] = None,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    transactions = await FinanceService.list_manual_transactions(
        db, current_user.school_id, year, month, type=type
    )
    return SuccessResponse(data=transactions)


@router.delete("/manual-transactions/{transaction_id}", response_model=SuccessResponse[None])
async def delete_manual_transaction(
    transaction_id: UUID,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    await FinanceService.delete_manual_transaction(db, current_user.school_id, transaction_id)
    return SuccessResponse(data=None, message="Transaction deleted")
