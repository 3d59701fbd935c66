"""
Roster / Summary Builder.

Read-only: reconciles what happened (attendance counters) against what was
paid (aggregated payments) without trusting the running balance, and
reports the two side by side.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from classledger.core.exceptions import NotFound
from classledger.core.logging import get_logger
from classledger.models.academic import Class, Enrollment
from classledger.models.enums import EnrollmentStatus, PaymentKind
from classledger.models.ledger import Attendance, Payment
from classledger.models.school import User
from classledger.schemas.enrollment import (
    EnrollmentSummary,
    PaymentTotals,
    PricingSnapshotResponse,
    RosterItem,
)
from classledger.services.pricing import (
    charged_sessions,
    owed_amount,
    owed_sessions,
    sessions_covered,
)

logger = get_logger(__name__)

ZERO = Decimal("0")
BALANCE_PLACES = Decimal("0.0001")


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _totals(by_kind: Dict[PaymentKind, Decimal]) -> PaymentTotals:
    return PaymentTotals(
        sessions=by_kind.get(PaymentKind.PAY_SESSIONS, ZERO),
        cycles=by_kind.get(PaymentKind.PAY_CYCLES, ZERO),
    )


def _coverage(enrollment: Enrollment, absence_rule: bool, totals: PaymentTotals) -> Tuple[int, int, int, Optional[Decimal]]:
    snapshot = enrollment.pricing_snapshot
    charged = charged_sessions(enrollment.attended_count, enrollment.absent_count, absence_rule)
    covered = sessions_covered(snapshot, totals.sessions, totals.cycles)
    owed = owed_sessions(charged, covered)
    return charged, covered, owed, owed_amount(snapshot, owed)


class RosterService:
    @staticmethod
    async def _get_class(db: AsyncSession, school_id: UUID, class_id: UUID) -> Class:
        result = await db.execute(
            select(Class).where(Class.id == class_id, Class.school_id == school_id)
        )
        cls = result.scalar_one_or_none()
        if not cls:
            raise NotFound("Class not found")
        return cls

    @staticmethod
    async def _payment_totals(
        db: AsyncSession,
        school_id: UUID,
        enrollment_ids: List[UUID],
    ) -> Dict[UUID, Dict[PaymentKind, Decimal]]:
        totals: Dict[UUID, Dict[PaymentKind, Decimal]] = defaultdict(dict)
        if not enrollment_ids:
            return totals
        result = await db.execute(
            select(Payment.enrollment_id, Payment.kind, func.sum(Payment.amount))
            .where(
                Payment.school_id == school_id,
                Payment.enrollment_id.in_(enrollment_ids),
                Payment.kind.in_([PaymentKind.PAY_SESSIONS, PaymentKind.PAY_CYCLES]),
            )
            .group_by(Payment.enrollment_id, Payment.kind)
        )
        for enrollment_id, kind, total in result.all():
            totals[enrollment_id][kind] = _dec(total)
        return totals

    @staticmethod
    async def build_class_roster(
        db: AsyncSession,
        school_id: UUID,
        class_id: UUID,
        on_date: date,
    ) -> List[RosterItem]:
        """Active enrollments of a class with the day's marks and their coverage."""
        cls = await RosterService._get_class(db, school_id, class_id)

        result = await db.execute(
            select(Enrollment, User)
            .join(User, User.id == Enrollment.student_id)
            .where(
                Enrollment.school_id == school_id,
                Enrollment.class_id == class_id,
                Enrollment.status == EnrollmentStatus.ACTIVE,
            )
            .order_by(User.last_name, User.first_name)
            .execution_options(populate_existing=True)
        )
        rows = result.all()
        enrollment_ids = [enrollment.id for enrollment, _ in rows]

        marks = {}
        if enrollment_ids:
            attendance = await db.execute(
                select(Attendance.enrollment_id, Attendance.status).where(
                    Attendance.school_id == school_id,
                    Attendance.class_id == class_id,
                    Attendance.date == on_date,
                    Attendance.enrollment_id.in_(enrollment_ids),
                )
            )
            marks = dict(attendance.all())

        payment_totals = await RosterService._payment_totals(db, school_id, enrollment_ids)

        roster = []
        for enrollment, student in rows:
            totals = _totals(payment_totals.get(enrollment.id, {}))
            charged, covered, owed, owed_money = _coverage(enrollment, cls.absence_rule, totals)
            roster.append(
                RosterItem(
                    enrollment_id=enrollment.id,
                    student_id=student.id,
                    student_name=student.full_name,
                    status_today=marks.get(enrollment.id),
                    balance=_dec(enrollment.balance),
                    attended=enrollment.attended_count,
                    absent=enrollment.absent_count,
                    last_attendance_date=enrollment.last_attendance_date,
                    charged=charged,
                    sessions_covered=covered,
                    owed_sessions=owed,
                    owed_amount=owed_money,
                    payment_totals=totals,
                    pricing_snapshot=PricingSnapshotResponse.model_validate(enrollment.pricing_snapshot),
                )
            )
        return roster

    @staticmethod
    async def get_enrollment_summary(
        db: AsyncSession,
        school_id: UUID,
        enrollment_id: UUID,
    ) -> EnrollmentSummary:
        """
        Charged vs. covered sessions for one enrollment, plus the balance the
        payments and attendance imply. A non-zero drift between that and the
        stored balance means the projection has gone wrong and is logged.
        """
        result = await db.execute(
            select(Enrollment)
            .where(Enrollment.id == enrollment_id, Enrollment.school_id == school_id)
            .execution_options(populate_existing=True)
        )
        enrollment = result.scalar_one_or_none()
        if not enrollment:
            raise NotFound("Enrollment not found")
        cls = await RosterService._get_class(db, school_id, enrollment.class_id)

        payment_totals = await RosterService._payment_totals(db, school_id, [enrollment.id])
        totals = _totals(payment_totals.get(enrollment.id, {}))
        charged, covered, owed, owed_money = _coverage(enrollment, cls.absence_rule, totals)

        credit_result = await db.execute(
            select(func.coalesce(func.sum(Payment.session_credit), 0)).where(
                Payment.school_id == school_id,
                Payment.enrollment_id == enrollment.id,
            )
        )
        total_credit = _dec(credit_result.scalar_one()).quantize(BALANCE_PLACES)
        balance = _dec(enrollment.balance).quantize(BALANCE_PLACES)
        expected_balance = total_credit - enrollment.attended_count
        drift = balance - expected_balance

        if drift != 0:
            logger.warning(
                "Ledger drift detected",
                extra={
                    "school_id": str(school_id),
                    "enrollment_id": str(enrollment.id),
                    "balance": str(balance),
                    "expected_balance": str(expected_balance),
                },
            )

        return EnrollmentSummary(
            enrollment_id=enrollment.id,
            student_id=enrollment.student_id,
            class_id=enrollment.class_id,
            status=enrollment.status,
            pricing_snapshot=PricingSnapshotResponse.model_validate(enrollment.pricing_snapshot),
            absence_rule=cls.absence_rule,
            balance=balance,
            attended=enrollment.attended_count,
            absent=enrollment.absent_count,
            charged=charged,
            sessions_covered=covered,
            owed_sessions=owed,
            owed_amount=owed_money,
            payment_totals=totals,
            expected_balance=expected_balance,
            balance_drift=drift,
        )
