from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from classledger.api import deps
from classledger.models.enums import AttendanceStatus
from classledger.models.school import User
from classledger.services.attendance_service import AttendanceChange, AttendanceService
from classledger.services.enrollment_service import EnrollmentService
from classledger.schemas.attendance import (
    AttendanceChangeResponse,
    AttendanceMark,
    AttendanceResponse,
    AttendanceUndo,
    CountersDelta,
)
from classledger.schemas.responses import SuccessResponse

router = APIRouter()


def _change_response(change: AttendanceChange) -> AttendanceChangeResponse:
    return AttendanceChangeResponse(
        attendance=AttendanceResponse.model_validate(change.attendance) if change.attendance else None,
        created=change.created,
        undone=change.undone,
        delta=CountersDelta(
            attended=change.delta.attended,
            absent=change.delta.absent,
            balance=change.delta.balance,
        ),
        class_id=change.class_id,
        date=change.date,
        roster=change.roster,
    )


@router.post("/mark", response_model=SuccessResponse[AttendanceChangeResponse])
async def mark_attendance(
    mark_in: AttendanceMark,
    response: Response,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Mark present/absent for a day. 201 for a fresh mark, 200 when an
    existing mark was overwritten (or left unchanged).
    """
    change = await AttendanceService.mark_attendance(
        db,
        current_user.school_id,
        mark_in.enrollment_id,
        mark_in.date,
        mark_in.status,
        marked_by=current_user.id,
    )
    response.status_code = status.HTTP_201_CREATED if change.created else status.HTTP_200_OK
    return SuccessResponse(data=_change_response(change), message="Attendance marked")


@router.post(
    "/undo",
    response_model=SuccessResponse[AttendanceChangeResponse],
    responses={204: {"description": "Nothing to undo"}},
)
async def undo_attendance(
    undo_in: AttendanceUndo,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Remove a day's mark and reverse its effect. 204 when there was no mark.
    """
    change = await AttendanceService.undo_attendance(
        db,
        current_user.school_id,
        undo_in.enrollment_id,
        undo_in.date,
        actor_id=current_user.id,
    )
    if change is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return SuccessResponse(data=_change_response(change), message="Attendance undone")


@router.get("/history", response_model=SuccessResponse[List[AttendanceResponse]])
async def attendance_history(
    enrollment_id: UUID,
    status_filter: Optional[AttendanceStatus] = None,
    current_user: User = Depends(deps.require_manager),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Attendance marks for an enrollment, newest first.
    """
    await EnrollmentService.require_enrollment(db, current_user.school_id, enrollment_id)
    records = await AttendanceService.attendance_history(
        db, current_user.school_id, enrollment_id, status=status_filter
    )
    return SuccessResponse(data=records)
