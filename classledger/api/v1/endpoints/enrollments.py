from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from classledger.api import deps
from classledger.models.school import User
from classledger.services.attendance_service import parse_attendance_date
from classledger.services.enrollment_service import EnrollmentService
from classledger.services.roster_service import RosterService
from classledger.schemas.enrollment import (
    ClassRoster,
    EnrollmentCreate,
    EnrollmentResponse,
    EnrollmentStatusUpdate,
    EnrollmentSummary,
)
from classledger.schemas.responses import SuccessResponse
from classledger.utils.time import get_utc_today

router = APIRouter()


@router.post("", response_model=SuccessResponse[EnrollmentResponse], status_code=status.HTTP_201_CREATED)
async def create_enrollment(
    enrollment_in: EnrollmentCreate,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Enroll a student in a class, capturing the class's current pricing.
    """
    enrollment = await EnrollmentService.create_enrollment(db, current_user.school_id, enrollment_in)
    return SuccessResponse(data=enrollment, message="Enrollment created successfully")


@router.get("/class/{class_id}/roster", response_model=SuccessResponse[ClassRoster])
async def get_class_roster(
    class_id: UUID,
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today (UTC)"),
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Class roster for a day: marks, balances and coverage per active enrollment.
    """
    on_date = parse_attendance_date(date) if date else get_utc_today()
    items = await RosterService.build_class_roster(db, current_user.school_id, class_id, on_date)
    return SuccessResponse(data=ClassRoster(class_id=class_id, date=on_date, items=items))


@router.get("/class/{class_id}", response_model=SuccessResponse[List[EnrollmentResponse]])
async def list_class_enrollments(
    class_id: UUID,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    enrollments = await EnrollmentService.list_class_enrollments(db, current_user.school_id, class_id)
    return SuccessResponse(data=enrollments)


@router.get("/student/{student_id}", response_model=SuccessResponse[List[EnrollmentResponse]])
async def list_student_enrollments(
    student_id: UUID,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    enrollments = await EnrollmentService.list_student_enrollments(db, current_user.school_id, student_id)
    return SuccessResponse(data=enrollments)


@router.get("/{enrollment_id}", response_model=SuccessResponse[EnrollmentResponse])
async def get_enrollment(
    enrollment_id: UUID,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    enrollment = await EnrollmentService.require_enrollment(db, current_user.school_id, enrollment_id)
    return SuccessResponse(data=enrollment)


@router.get("/{enrollment_id}/summary", response_model=SuccessResponse[EnrollmentSummary])
async def get_enrollment_summary(
    enrollment_id: UUID,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Charged vs. covered sessions and amount owed for one enrollment.
    """
    summary = await RosterService.get_enrollment_summary(db, current_user.school_id, enrollment_id)
    return SuccessResponse(data=summary)


@router.patch("/{enrollment_id}/status", response_model=SuccessResponse[EnrollmentResponse])
async def update_enrollment_status(
    enrollment_id: UUID,
    status_in: EnrollmentStatusUpdate,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    enrollment = await EnrollmentService.update_status(
        db, current_user.school_id, enrollment_id, status_in.status
    )
    return SuccessResponse(data=enrollment, message="Enrollment status updated")


@router.delete("/{enrollment_id}", response_model=SuccessResponse[None])
async def delete_enrollment(
    enrollment_id: UUID,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Delete an enrollment together with its attendance and payments.
    """
    await EnrollmentService.delete_enrollment(db, current_user.school_id, enrollment_id)
    return SuccessResponse(data=None, message="Enrollment deleted")
