"""Models Package - Export all models for easy imports"""

from classledger.models.base import BaseModel, SchoolScopedMixin, StatusMixin
from classledger.models.enums import *
from classledger.models.school import School, User
from classledger.models.academic import Class, Enrollment
from classledger.models.ledger import Payment, Attendance, StudentFinancial, DebtAdjustment
from classledger.models.finance import (
    ManualTransaction,
    TeacherPayout,
    TeacherPayoutEntry,
    EmployeeSalaryTransaction,
    MonthlyFinancialSummary,
)
from classledger.models.activity import ActivityLog


__all__ = [
    # Base classes
    "BaseModel",
    "SchoolScopedMixin",
    "StatusMixin",

    # Tenancy
    "School",
    "User",

    # Academic
    "Class",
    "Enrollment",

    # Ledger
    "Payment",
    "Attendance",
    "StudentFinancial",
    "DebtAdjustment",

    # Finance
    "ManualTransaction",
    "TeacherPayout",
    "TeacherPayoutEntry",
    "EmployeeSalaryTransaction",
    "MonthlyFinancialSummary",

    # Activity
    "ActivityLog",
]
