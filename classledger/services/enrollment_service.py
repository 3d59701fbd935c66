from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from sqlalchemy import select, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from classledger.core.exceptions import Conflict, NotFound
from classledger.core.logging import get_logger
from classledger.models.academic import Class, Enrollment
from classledger.models.enums import ClassStatus, EnrollmentStatus, UserRole
from classledger.models.ledger import Attendance, DebtAdjustment, Payment
from classledger.models.school import User
from classledger.schemas.enrollment import EnrollmentCreate
from classledger.services.pricing import build_snapshot
from classledger.utils.time import get_utc_now

logger = get_logger(__name__)


class EnrollmentService:
    @staticmethod
    async def get_class(db: AsyncSession, school_id: UUID, class_id: UUID) -> Optional[Class]:
        result = await db.execute(
            select(Class).where(Class.id == class_id, Class.school_id == school_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_student(db: AsyncSession, school_id: UUID, student_id: UUID) -> Optional[User]:
        result = await db.execute(
            select(User).where(
                User.id == student_id,
                User.school_id == school_id,
                User.role == UserRole.STUDENT,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_enrollment(
        db: AsyncSession,
        school_id: UUID,
        enrollment_id: UUID,
    ) -> Optional[Enrollment]:
        """Fresh read; never a stale identity-map copy."""
        result = await db.execute(
            select(Enrollment)
            .where(Enrollment.id == enrollment_id, Enrollment.school_id == school_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def require_enrollment(db: AsyncSession, school_id: UUID, enrollment_id: UUID) -> Enrollment:
        enrollment = await EnrollmentService.get_enrollment(db, school_id, enrollment_id)
        if not enrollment:
            raise NotFound("Enrollment not found")
        return enrollment

    @staticmethod
    async def get_active_enrollment(
        db: AsyncSession,
        school_id: UUID,
        student_id: UUID,
        class_id: UUID,
    ) -> Optional[Enrollment]:
        result = await db.execute(
            select(Enrollment).where(
                Enrollment.school_id == school_id,
                Enrollment.student_id == student_id,
                Enrollment.class_id == class_id,
                Enrollment.status == EnrollmentStatus.ACTIVE,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def create_enrollment(
        db: AsyncSession,
        school_id: UUID,
        data: EnrollmentCreate,
    ) -> Enrollment:
        """
        Enroll a student, copying the class's current pricing into the
        enrollment. Later price edits on the class never reach it.
        """
        student = await EnrollmentService.get_student(db, school_id, data.student_id)
        if not student:
            raise NotFound("Student not found")

        cls = await EnrollmentService.get_class(db, school_id, data.class_id)
        if not cls or cls.status != ClassStatus.ACTIVE:
            raise NotFound("Class not found")

        snapshot = build_snapshot(cls.payment_model, cls.session_price, cls.cycle_size, cls.cycle_price)

        if await EnrollmentService.get_active_enrollment(db, school_id, data.student_id, data.class_id):
            raise Conflict("Student already has an active enrollment in this class")

        enrollment = Enrollment(
            school_id=school_id,
            student_id=data.student_id,
            class_id=data.class_id,
            status=EnrollmentStatus.ACTIVE,
            enrolled_at=get_utc_now(),
            pricing_model=snapshot.model,
            snapshot_session_price=snapshot.session_price,
            snapshot_cycle_size=snapshot.cycle_size,
            snapshot_cycle_price=snapshot.cycle_price,
            balance=0,
            attended_count=0,
            absent_count=0,
        )
        db.add(enrollment)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise Conflict("Student already has an active enrollment in this class")

        logger.info(
            "Enrollment created",
            extra={
                "school_id": str(school_id),
                "enrollment_id": str(enrollment.id),
                "class_id": str(data.class_id),
                "pricing_model": snapshot.model.value,
            },
        )
        return await EnrollmentService.require_enrollment(db, school_id, enrollment.id)

    @staticmethod
    async def list_class_enrollments(
        db: AsyncSession,
        school_id: UUID,
        class_id: UUID,
        status: Optional[EnrollmentStatus] = None,
    ) -> List[Enrollment]:
        stmt = select(Enrollment).where(
            Enrollment.school_id == school_id,
            Enrollment.class_id == class_id,
        )
        if status is not None:
            stmt = stmt.where(Enrollment.status == status)
        result = await db.execute(
            stmt.order_by(Enrollment.enrolled_at).execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_student_enrollments(
        db: AsyncSession,
        school_id: UUID,
        student_id: UUID,
    ) -> List[Enrollment]:
        result = await db.execute(
            select(Enrollment)
            .where(Enrollment.school_id == school_id, Enrollment.student_id == student_id)
            .order_by(Enrollment.enrolled_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def update_status(
        db: AsyncSession,
        school_id: UUID,
        enrollment_id: UUID,
        status: EnrollmentStatus,
    ) -> Enrollment:
        enrollment = await EnrollmentService.require_enrollment(db, school_id, enrollment_id)
        if enrollment.status == status:
            return enrollment

        if status == EnrollmentStatus.ACTIVE:
            other = await EnrollmentService.get_active_enrollment(
                db, school_id, enrollment.student_id, enrollment.class_id
            )
            if other and other.id != enrollment.id:
                raise Conflict("Student already has an active enrollment in this class")

        enrollment.status = status
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise Conflict("Student already has an active enrollment in this class")
        return await EnrollmentService.require_enrollment(db, school_id, enrollment_id)

    @staticmethod
    async def delete_enrollment(db: AsyncSession, school_id: UUID, enrollment_id: UUID) -> bool:
        """
        Delete an enrollment with its attendance and payments. Student debt
        is left as is; the debt deltas of the removed payments are carried
        over into a debt adjustment so the debt still replays to the same
        value.
        """
        enrollment = await EnrollmentService.require_enrollment(db, school_id, enrollment_id)
        student_id = enrollment.student_id

        carried = await db.execute(
            select(func.coalesce(func.sum(Payment.debt_delta), 0)).where(
                Payment.school_id == school_id,
                Payment.enrollment_id == enrollment_id,
            )
        )
        carried_delta = Decimal(str(carried.scalar_one())).quantize(Decimal("0.01"))
        if carried_delta != 0:
            db.add(
                DebtAdjustment(
                    school_id=school_id,
                    student_id=student_id,
                    delta=carried_delta,
                    reason="enrollment_deleted",
                    note=f"Debt carried over from payments of deleted enrollment {enrollment_id}",
                )
            )

        attendance = await db.execute(
            delete(Attendance).where(
                Attendance.school_id == school_id,
                Attendance.enrollment_id == enrollment_id,
            )
        )
        payments = await db.execute(
            delete(Payment).where(
                Payment.school_id == school_id,
                Payment.enrollment_id == enrollment_id,
            )
        )
        await db.execute(
            delete(Enrollment).where(
                Enrollment.school_id == school_id,
                Enrollment.id == enrollment_id,
            )
        )
        await db.commit()

        logger.info(
            "Enrollment deleted",
            extra={
                "school_id": str(school_id),
                "enrollment_id": str(enrollment_id),
                "attendance_removed": attendance.rowcount,
                "payments_removed": payments.rowcount,
                "debt_carried": str(carried_delta),
            },
        )
        return True
