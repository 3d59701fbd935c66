from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from classledger.api import deps
from classledger.core.exceptions import NotFound
from classledger.models.school import User
from classledger.services.ledger_service import LedgerService
from classledger.services.payment_service import PaymentService
from classledger.schemas.payment import (
    DebtAdjustmentCreate,
    DebtPaymentCreate,
    DebtRebuildResponse,
    PaymentCreate,
    PaymentRecordResponse,
    PaymentResponse,
    StudentDebtResponse,
)
from classledger.schemas.responses import SuccessResponse

router = APIRouter()


@router.post("", response_model=SuccessResponse[PaymentRecordResponse], status_code=status.HTTP_201_CREATED)
async def record_payment(
    payment_in: PaymentCreate,
    response: Response,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Record a payment. A retry with the same idempotency key returns the
    original payment with 200 instead of 201.
    """
    result = await PaymentService.record_payment(db, current_user.school_id, payment_in, current_user.id)
    if result.replayed:
        response.status_code = status.HTTP_200_OK
    return SuccessResponse(
        data=PaymentRecordResponse(
            payment=PaymentResponse.model_validate(result.payment),
            session_credit=result.session_credit,
            replayed=result.replayed,
        ),
        message="Payment already recorded" if result.replayed else "Payment recorded",
    )


@router.get("", response_model=SuccessResponse[List[PaymentResponse]])
async def list_payments(
    enrollment_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
    class_id: Optional[UUID] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    payments = await PaymentService.list_payments(
        db,
        current_user.school_id,
        enrollment_id=enrollment_id,
        student_id=student_id,
        class_id=class_id,
        skip=skip,
        limit=limit,
    )
    return SuccessResponse(data=payments)


@router.post("/adjust-debt", response_model=SuccessResponse[StudentDebtResponse])
async def adjust_student_debt(
    adjustment_in: DebtAdjustmentCreate,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Manually correct a student's debt by a signed delta.
    """
    await PaymentService.adjust_student_debt(
        db,
        current_user.school_id,
        adjustment_in.student_id,
        adjustment_in.delta,
        adjustment_in.reason,
        note=adjustment_in.note,
        actor_id=current_user.id,
    )
    debt, updated_at = await PaymentService.get_student_debt(db, current_user.school_id, adjustment_in.student_id)
    return SuccessResponse(
        data=StudentDebtResponse(student_id=adjustment_in.student_id, debt=debt, updated_at=updated_at),
        message="Debt adjusted",
    )


@router.post("/pay-debt", response_model=SuccessResponse[PaymentResponse], status_code=status.HTTP_201_CREATED)
async def pay_student_debt(
    payment_in: DebtPaymentCreate,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Settle (part of) a student's outstanding debt.
    """
    payment = await PaymentService.pay_student_debt(
        db,
        current_user.school_id,
        payment_in.student_id,
        payment_in.amount,
        note=payment_in.note,
        actor_id=current_user.id,
    )
    return SuccessResponse(data=payment, message="Debt payment recorded")


@router.get("/student-debt/{student_id}", response_model=SuccessResponse[StudentDebtResponse])
async def get_student_debt(
    student_id: UUID,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    debt, updated_at = await PaymentService.get_student_debt(db, current_user.school_id, student_id)
    return SuccessResponse(data=StudentDebtResponse(student_id=student_id, debt=debt, updated_at=updated_at))


@router.post("/student-debt/{student_id}/rebuild", response_model=SuccessResponse[DebtRebuildResponse])
async def rebuild_student_debt(
    student_id: UUID,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Recompute a student's debt from recorded deltas and repair any drift.
    """
    await PaymentService.get_student_debt(db, current_user.school_id, student_id)
    rebuild = await LedgerService.rebuild_student_debt(db, current_user.school_id, student_id)
    return SuccessResponse(
        data=DebtRebuildResponse(
            student_id=student_id,
            stored_debt=rebuild.stored_debt,
            replayed_debt=rebuild.replayed_debt,
            drift=rebuild.drift,
        )
    )


@router.get("/{payment_id}", response_model=SuccessResponse[PaymentResponse])
async def get_payment(
    payment_id: UUID,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    payment = await PaymentService.get_payment(db, current_user.school_id, payment_id)
    if not payment:
        raise NotFound("Payment not found")
    return SuccessResponse(data=payment)
