"""
Attendance Reconciler.

Marks and unmarks attendance for an (enrollment, date), keeping the
enrollment's counters and balance in step with the mark. Only ``present``
consumes a session; absences are billed at the reporting layer when the
class charges them (see pricing.charged_sessions).
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from classledger.core.exceptions import NotFound, ValidationFailed
from classledger.core.logging import get_logger
from classledger.models.academic import Class
from classledger.models.enums import AttendanceStatus
from classledger.models.ledger import Attendance
from classledger.schemas.enrollment import RosterItem
from classledger.services.activity_service import ActivityLogSink
from classledger.services.ledger_service import EnrollmentDelta, LedgerService
from classledger.services.roster_service import RosterService
from classledger.utils.time import DateInput, to_date_only

logger = get_logger(__name__)

ONE = Decimal("1")


def mark_transition(prior: Optional[AttendanceStatus], new: AttendanceStatus) -> EnrollmentDelta:
    """
    Counter and balance change for marking ``new`` over ``prior``.

    ====================  ========  ======  =======
    prior -> new          attended  absent  balance
    ====================  ========  ======  =======
    none -> present       +1        0       -1
    none -> absent        0         +1      0
    present -> absent     -1        +1      +1
    absent -> present     +1        -1      -1
    same status           0         0       0
    ====================  ========  ======  =======
    """
    if prior == new:
        return EnrollmentDelta()

    attended = absent = 0
    balance = Decimal("0")

    if prior == AttendanceStatus.PRESENT:
        attended -= 1
        balance += ONE
    elif prior == AttendanceStatus.ABSENT:
        absent -= 1

    if new == AttendanceStatus.PRESENT:
        attended += 1
        balance -= ONE
    else:
        absent += 1

    return EnrollmentDelta(balance=balance, attended=attended, absent=absent)


def undo_transition(prior: AttendanceStatus) -> EnrollmentDelta:
    """Reverse a mark: drop its counter and refund the session if it consumed one."""
    if prior == AttendanceStatus.PRESENT:
        return EnrollmentDelta(balance=ONE, attended=-1)
    return EnrollmentDelta(absent=-1)


@dataclass
class AttendanceChange:
    """Outcome of a mark or undo, with the class roster as it now stands."""

    attendance: Optional[Attendance]
    class_id: UUID
    date: date
    delta: EnrollmentDelta
    created: bool = False
    undone: bool = False
    roster: List[RosterItem] = field(default_factory=list)


def parse_attendance_date(value: DateInput) -> date:
    try:
        return to_date_only(value)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed(f"Invalid attendance date: {value!r}") from exc


class AttendanceService:
    @staticmethod
    async def get_record(
        db: AsyncSession,
        school_id: UUID,
        enrollment_id: UUID,
        on_date: date,
    ) -> Optional[Attendance]:
        result = await db.execute(
            select(Attendance)
            .where(
                Attendance.school_id == school_id,
                Attendance.enrollment_id == enrollment_id,
                Attendance.date == on_date,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _require_class(db: AsyncSession, school_id: UUID, class_id: UUID) -> Class:
        result = await db.execute(
            select(Class).where(Class.id == class_id, Class.school_id == school_id)
        )
        cls = result.scalar_one_or_none()
        if not cls:
            raise NotFound("Class not found")
        return cls

    @staticmethod
    async def mark_attendance(
        db: AsyncSession,
        school_id: UUID,
        enrollment_id: UUID,
        on_date: DateInput,
        status: AttendanceStatus,
        marked_by: Optional[UUID] = None,
    ) -> AttendanceChange:
        """
        Mark an enrollment present or absent for a day.

        The prior mark is read inside the same transaction that holds the
        enrollment's row lock, so the delta is always computed from the
        latest state. A racing first insert for the same day is retried once.

        Raises:
            ValidationFailed: Malformed date, unknown status or inactive enrollment
            NotFound: Enrollment or class absent or in another school
        """
        attendance_date = parse_attendance_date(on_date)
        try:
            status = AttendanceStatus(status)
        except ValueError as exc:
            raise ValidationFailed(f"Invalid attendance status: {status!r}") from exc

        try:
            change = await AttendanceService._apply_mark(
                db, school_id, enrollment_id, attendance_date, status, marked_by
            )
        except IntegrityError:
            await db.rollback()
            logger.info(
                "Attendance insert raced, retrying",
                extra={"enrollment_id": str(enrollment_id), "date": attendance_date.isoformat()},
            )
            change = await AttendanceService._apply_mark(
                db, school_id, enrollment_id, attendance_date, status, marked_by
            )

        logger.info(
            "Attendance marked",
            extra={
                "school_id": str(school_id),
                "enrollment_id": str(enrollment_id),
                "date": attendance_date.isoformat(),
                "status": status.value,
                "new_mark": change.created,
                "balance_delta": str(change.delta.balance),
            },
        )
        if not change.delta.is_noop or change.created:
            await ActivityLogSink.emit(
                db,
                school_id=school_id,
                actor_id=marked_by,
                action="attendance_override",
                description=f"Marked {status.value} on {attendance_date.isoformat()}",
                details={
                    "enrollment_id": str(enrollment_id),
                    "date": attendance_date.isoformat(),
                    "status": status.value,
                },
                entity_type="attendance",
                entity_id=change.attendance.id,
            )

        change.roster = await RosterService.build_class_roster(db, school_id, change.class_id, attendance_date)
        return change

    @staticmethod
    async def _apply_mark(
        db: AsyncSession,
        school_id: UUID,
        enrollment_id: UUID,
        attendance_date: date,
        status: AttendanceStatus,
        marked_by: Optional[UUID],
    ) -> AttendanceChange:
        enrollment = await LedgerService.lock_enrollment(db, school_id, enrollment_id)
        if not enrollment:
            raise NotFound("Enrollment not found")
        if not enrollment.is_active:
            raise ValidationFailed("Attendance can only be marked on an active enrollment")
        await AttendanceService._require_class(db, school_id, enrollment.class_id)

        class_id = enrollment.class_id
        record = await AttendanceService.get_record(db, school_id, enrollment_id, attendance_date)
        prior = record.status if record else None
        created = record is None

        if record is None:
            record = Attendance(
                school_id=school_id,
                class_id=class_id,
                student_id=enrollment.student_id,
                enrollment_id=enrollment_id,
                date=attendance_date,
                status=status,
                created_by=marked_by,
            )
            db.add(record)
            await db.flush()
        elif record.status != status:
            record.status = status
            record.created_by = marked_by

        delta = mark_transition(prior, status)
        await LedgerService.apply_enrollment_event(
            db, school_id, enrollment_id, delta, attendance_date=attendance_date
        )
        await db.commit()

        return AttendanceChange(
            attendance=record,
            class_id=class_id,
            date=attendance_date,
            delta=delta,
            created=created,
        )

    @staticmethod
    async def undo_attendance(
        db: AsyncSession,
        school_id: UUID,
        enrollment_id: UUID,
        on_date: DateInput,
        actor_id: Optional[UUID] = None,
    ) -> Optional[AttendanceChange]:
        """
        Remove a mark and reverse its effect on counters and balance.

        Returns None when there is nothing to undo.
        """
        attendance_date = parse_attendance_date(on_date)

        enrollment = await LedgerService.lock_enrollment(db, school_id, enrollment_id)
        if not enrollment:
            raise NotFound("Enrollment not found")
        class_id = enrollment.class_id
        await AttendanceService._require_class(db, school_id, class_id)

        record = await AttendanceService.get_record(db, school_id, enrollment_id, attendance_date)
        if record is None:
            await db.rollback()
            return None

        prior = record.status
        await db.execute(
            delete(Attendance).where(
                Attendance.id == record.id,
                Attendance.school_id == school_id,
            )
        )
        delta = undo_transition(prior)
        await LedgerService.apply_enrollment_event(db, school_id, enrollment_id, delta)
        await db.commit()

        logger.info(
            "Attendance undone",
            extra={
                "school_id": str(school_id),
                "enrollment_id": str(enrollment_id),
                "date": attendance_date.isoformat(),
                "status": prior.value,
            },
        )
        await ActivityLogSink.emit(
            db,
            school_id=school_id,
            actor_id=actor_id,
            action="attendance_override",
            description=f"Undid {prior.value} mark on {attendance_date.isoformat()}",
            details={
                "enrollment_id": str(enrollment_id),
                "date": attendance_date.isoformat(),
                "undone_status": prior.value,
            },
            entity_type="enrollment",
            entity_id=enrollment_id,
        )

        roster = await RosterService.build_class_roster(db, school_id, class_id, attendance_date)
        return AttendanceChange(
            attendance=None,
            class_id=class_id,
            date=attendance_date,
            delta=delta,
            undone=True,
            roster=roster,
        )

    @staticmethod
    async def attendance_history(
        db: AsyncSession,
        school_id: UUID,
        enrollment_id: UUID,
        status: Optional[AttendanceStatus] = None,
    ) -> List[Attendance]:
        stmt = select(Attendance).where(
            Attendance.school_id == school_id,
            Attendance.enrollment_id == enrollment_id,
        )
        if status is not None:
            stmt = stmt.where(Attendance.status == status)
        result = await db.execute(stmt.order_by(Attendance.date.desc()))
        return list(result.scalars().all())
