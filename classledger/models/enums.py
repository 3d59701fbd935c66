"""Centralized Enum Definitions"""

import enum


# Domain 1: Users
class UserRole(str, enum.Enum):
    """User roles for RBAC"""
    MANAGER = "manager"
    STAFF = "staff"
    TEACHER = "teacher"
    STUDENT = "student"


# Domain 2: Classes & Enrollments
class ClassStatus(str, enum.Enum):
    """Class status"""
    ACTIVE = "active"
    ARCHIVED = "archived"


class PricingModel(str, enum.Enum):
    """How a class bills its sessions"""
    PER_SESSION = "per_session"
    PER_CYCLE = "per_cycle"


class TeacherCutMode(str, enum.Enum):
    """How a teacher's share of class income is computed"""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class EnrollmentStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


# Domain 3: Ledger
class PaymentKind(str, enum.Enum):
    """What a payment pays for"""
    PAY_SESSIONS = "pay_sessions"
    PAY_CYCLES = "pay_cycles"
    DEBT_PAYMENT = "debt_payment"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"


class UnitType(str, enum.Enum):
    """Unit a payment purchased"""
    SESSION = "session"
    CYCLE = "cycle"


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"


# Domain 4: Finance
class SummaryState(str, enum.Enum):
    """Monthly summary lifecycle: live -> frozen, one way"""
    LIVE = "live"
    FROZEN = "frozen"


class TransactionType(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


# Domain 5: Activity
class ActivitySeverity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
