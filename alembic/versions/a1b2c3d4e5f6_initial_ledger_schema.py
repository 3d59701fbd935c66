"""initial ledger schema

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


ENUMS = {
    "user_role": ("manager", "staff", "teacher", "student"),
    "class_status": ("active", "archived"),
    "pricing_model": ("per_session", "per_cycle"),
    "teacher_cut_mode": ("percentage", "fixed"),
    "enrollment_status": ("active", "paused", "completed"),
    "payment_kind": ("pay_sessions", "pay_cycles", "debt_payment"),
    "payment_method": ("cash",),
    "unit_type": ("session", "cycle"),
    "attendance_status": ("present", "absent"),
    "summary_state": ("live", "frozen"),
    "transaction_type": ("income", "expense"),
    "payout_status": ("pending", "partial", "paid"),
    "activity_severity": ("info", "warning", "critical"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _base_columns():
    return [
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _school_fk():
    return sa.ForeignKeyConstraint(["school_id"], ["schools.id"], ondelete="CASCADE")


def upgrade() -> None:
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(op.get_bind(), checkfirst=True)

    op.create_table(
        "schools",
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_schools_id"), "schools", ["id"], unique=False)
    op.create_index(op.f("ix_schools_is_active"), "schools", ["is_active"], unique=False)

    op.create_table(
        "users",
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=False),
        sa.Column("last_name", sa.String(255), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("school_id", sa.UUID(), nullable=False),
        *_base_columns(),
        _school_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_role"), "users", ["role"], unique=False)
    op.create_index(op.f("ix_users_is_active"), "users", ["is_active"], unique=False)
    op.create_index(op.f("ix_users_school_id"), "users", ["school_id"], unique=False)

    op.create_table(
        "classes",
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("teacher_id", sa.UUID(), nullable=True),
        sa.Column("status", _enum("class_status"), nullable=False),
        sa.Column("payment_model", _enum("pricing_model"), nullable=False),
        sa.Column("session_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("cycle_size", sa.Integer(), nullable=True),
        sa.Column("cycle_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("absence_rule", sa.Boolean(), nullable=False),
        sa.Column("teacher_cut_mode", _enum("teacher_cut_mode"), nullable=False),
        sa.Column("teacher_cut_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("school_id", sa.UUID(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["teacher_id"], ["users.id"], ondelete="SET NULL"),
        _school_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_classes_id"), "classes", ["id"], unique=False)
    op.create_index(op.f("ix_classes_teacher_id"), "classes", ["teacher_id"], unique=False)
    op.create_index(op.f("ix_classes_status"), "classes", ["status"], unique=False)
    op.create_index(op.f("ix_classes_school_id"), "classes", ["school_id"], unique=False)

    op.create_table(
        "enrollments",
        sa.Column("student_id", sa.UUID(), nullable=False),
        sa.Column("class_id", sa.UUID(), nullable=False),
        sa.Column("status", _enum("enrollment_status"), nullable=False),
        sa.Column("enrolled_at", sa.DateTime(), nullable=False),
        sa.Column("pricing_model", _enum("pricing_model"), nullable=False),
        sa.Column("snapshot_session_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("snapshot_cycle_size", sa.Integer(), nullable=True),
        sa.Column("snapshot_cycle_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("balance", sa.Numeric(12, 4), nullable=False),
        sa.Column("attended_count", sa.Integer(), nullable=False),
        sa.Column("absent_count", sa.Integer(), nullable=False),
        sa.Column("last_attendance_date", sa.Date(), nullable=True),
        sa.Column("school_id", sa.UUID(), nullable=False),
        *_base_columns(),
        sa.CheckConstraint("attended_count >= 0", name="ck_enrollments_attended_non_negative"),
        sa.CheckConstraint("absent_count >= 0", name="ck_enrollments_absent_non_negative"),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["class_id"], ["classes.id"], ondelete="CASCADE"),
        _school_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_enrollments_id"), "enrollments", ["id"], unique=False)
    op.create_index(op.f("ix_enrollments_student_id"), "enrollments", ["student_id"], unique=False)
    op.create_index(op.f("ix_enrollments_class_id"), "enrollments", ["class_id"], unique=False)
    op.create_index(op.f("ix_enrollments_school_id"), "enrollments", ["school_id"], unique=False)
    op.create_index(
        "ix_enrollments_school_class_status", "enrollments", ["school_id", "class_id", "status"], unique=False
    )
    op.create_index(
        "ix_enrollments_school_student_status", "enrollments", ["school_id", "student_id", "status"], unique=False
    )
    op.create_index(
        "uq_enrollments_active_student_class",
        "enrollments",
        ["student_id", "class_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "payments",
        sa.Column("class_id", sa.UUID(), nullable=True),
        sa.Column("student_id", sa.UUID(), nullable=False),
        sa.Column("enrollment_id", sa.UUID(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("kind", _enum("payment_kind"), nullable=False),
        sa.Column("method", _enum("payment_method"), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("unit_type", _enum("unit_type"), nullable=True),
        sa.Column("units", sa.Numeric(12, 4), nullable=True),
        sa.Column("expected_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("taken", sa.Numeric(12, 2), nullable=False),
        sa.Column("debt_delta", sa.Numeric(12, 2), nullable=False),
        sa.Column("session_credit", sa.Numeric(12, 4), nullable=False),
        sa.Column("idempotency_key", sa.String(128), nullable=True),
        sa.Column("recorded_by", sa.UUID(), nullable=True),
        sa.Column("school_id", sa.UUID(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["class_id"], ["classes.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["enrollment_id"], ["enrollments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["recorded_by"], ["users.id"], ondelete="SET NULL"),
        _school_fk(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("enrollment_id", "idempotency_key", name="uq_payments_enrollment_idempotency_key"),
    )
    op.create_index(op.f("ix_payments_id"), "payments", ["id"], unique=False)
    op.create_index(op.f("ix_payments_kind"), "payments", ["kind"], unique=False)
    op.create_index(op.f("ix_payments_school_id"), "payments", ["school_id"], unique=False)
    op.create_index(
        "ix_payments_school_enrollment_created", "payments", ["school_id", "enrollment_id", "created_at"], unique=False
    )
    op.create_index(
        "ix_payments_school_student_created", "payments", ["school_id", "student_id", "created_at"], unique=False
    )
    op.create_index(
        "ix_payments_school_class_created", "payments", ["school_id", "class_id", "created_at"], unique=False
    )

    op.create_table(
        "attendance",
        sa.Column("class_id", sa.UUID(), nullable=False),
        sa.Column("student_id", sa.UUID(), nullable=False),
        sa.Column("enrollment_id", sa.UUID(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("status", _enum("attendance_status"), nullable=False),
        sa.Column("created_by", sa.UUID(), nullable=True),
        sa.Column("school_id", sa.UUID(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["class_id"], ["classes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["enrollment_id"], ["enrollments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        _school_fk(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("enrollment_id", "date", name="uq_attendance_enrollment_date"),
    )
    op.create_index(op.f("ix_attendance_id"), "attendance", ["id"], unique=False)
    op.create_index(op.f("ix_attendance_school_id"), "attendance", ["school_id"], unique=False)
    op.create_index("ix_attendance_school_class_date", "attendance", ["school_id", "class_id", "date"], unique=False)
    op.create_index(
        "ix_attendance_school_student_date", "attendance", ["school_id", "student_id", "date"], unique=False
    )

    op.create_table(
        "student_financials",
        sa.Column("student_id", sa.UUID(), nullable=False),
        sa.Column("debt", sa.Numeric(12, 2), nullable=False),
        sa.Column("school_id", sa.UUID(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
        _school_fk(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("school_id", "student_id", name="uq_student_financials_school_student"),
    )
    op.create_index(op.f("ix_student_financials_id"), "student_financials", ["id"], unique=False)
    op.create_index(op.f("ix_student_financials_student_id"), "student_financials", ["student_id"], unique=False)
    op.create_index(op.f("ix_student_financials_school_id"), "student_financials", ["school_id"], unique=False)

    op.create_table(
        "debt_adjustments",
        sa.Column("student_id", sa.UUID(), nullable=False),
        sa.Column("delta", sa.Numeric(12, 2), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=True),
        sa.Column("school_id", sa.UUID(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        _school_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_debt_adjustments_id"), "debt_adjustments", ["id"], unique=False)
    op.create_index(op.f("ix_debt_adjustments_school_id"), "debt_adjustments", ["school_id"], unique=False)
    op.create_index(
        "ix_debt_adjustments_school_student_created",
        "debt_adjustments",
        ["school_id", "student_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "manual_transactions",
        sa.Column("type", _enum("transaction_type"), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("receipt_number", sa.String(100), nullable=True),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("created_by", sa.UUID(), nullable=True),
        sa.Column("school_id", sa.UUID(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        _school_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_manual_transactions_id"), "manual_transactions", ["id"], unique=False)
    op.create_index(op.f("ix_manual_transactions_school_id"), "manual_transactions", ["school_id"], unique=False)
    op.create_index("ix_manual_transactions_school_date", "manual_transactions", ["school_id", "date"], unique=False)

    op.create_table(
        "teacher_payouts",
        sa.Column("teacher_id", sa.UUID(), nullable=False),
        sa.Column("class_id", sa.UUID(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("calculated_income", sa.Numeric(12, 2), nullable=False),
        sa.Column("paid_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("remaining_debt", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", _enum("payout_status"), nullable=False),
        sa.Column("class_name", sa.String(255), nullable=True),
        sa.Column("class_income", sa.Numeric(12, 2), nullable=False),
        sa.Column("cut_mode", _enum("teacher_cut_mode"), nullable=True),
        sa.Column("cut_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("school_id", sa.UUID(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["teacher_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["class_id"], ["classes.id"], ondelete="CASCADE"),
        _school_fk(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "school_id", "teacher_id", "class_id", "year", "month", name="uq_teacher_payouts_period"
        ),
    )
    op.create_index(op.f("ix_teacher_payouts_id"), "teacher_payouts", ["id"], unique=False)
    op.create_index(op.f("ix_teacher_payouts_school_id"), "teacher_payouts", ["school_id"], unique=False)
    op.create_index("ix_teacher_payouts_school_period", "teacher_payouts", ["school_id", "year", "month"], unique=False)

    op.create_table(
        "teacher_payout_entries",
        sa.Column("payout_id", sa.UUID(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("method", _enum("payment_method"), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("paid_by", sa.UUID(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["payout_id"], ["teacher_payouts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["paid_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_teacher_payout_entries_id"), "teacher_payout_entries", ["id"], unique=False)
    op.create_index(
        op.f("ix_teacher_payout_entries_payout_id"), "teacher_payout_entries", ["payout_id"], unique=False
    )

    op.create_table(
        "employee_salary_transactions",
        sa.Column("employee_id", sa.UUID(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("calculated_salary", sa.Numeric(12, 2), nullable=False),
        sa.Column("paid_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("remaining", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", _enum("payment_method"), nullable=False),
        sa.Column("transaction_date", sa.DateTime(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=True),
        sa.Column("school_id", sa.UUID(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        _school_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_employee_salary_transactions_id"), "employee_salary_transactions", ["id"], unique=False)
    op.create_index(
        op.f("ix_employee_salary_transactions_employee_id"),
        "employee_salary_transactions",
        ["employee_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_employee_salary_transactions_school_id"), "employee_salary_transactions", ["school_id"], unique=False
    )
    op.create_index(
        "ix_employee_salaries_school_period", "employee_salary_transactions", ["school_id", "year", "month"], unique=False
    )

    op.create_table(
        "monthly_financial_summaries",
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("student_income", sa.Numeric(14, 2), nullable=False),
        sa.Column("student_payment_count", sa.Integer(), nullable=False),
        sa.Column("manual_income", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_income", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_expenses", sa.Numeric(14, 2), nullable=False),
        sa.Column("teacher_earnings_calculated", sa.Numeric(14, 2), nullable=False),
        sa.Column("teacher_payouts_paid", sa.Numeric(14, 2), nullable=False),
        sa.Column("teacher_count", sa.Integer(), nullable=False),
        sa.Column("employee_salaries_calculated", sa.Numeric(14, 2), nullable=False),
        sa.Column("employee_salaries_paid", sa.Numeric(14, 2), nullable=False),
        sa.Column("employee_count", sa.Integer(), nullable=False),
        sa.Column("total_student_debt", sa.Numeric(14, 2), nullable=False),
        sa.Column("net_balance", sa.Numeric(14, 2), nullable=False),
        sa.Column("state", _enum("summary_state"), nullable=False),
        sa.Column("last_calculated", sa.DateTime(), nullable=True),
        sa.Column("frozen_at", sa.DateTime(), nullable=True),
        sa.Column("frozen_by", sa.UUID(), nullable=True),
        sa.Column("school_id", sa.UUID(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["frozen_by"], ["users.id"], ondelete="SET NULL"),
        _school_fk(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("school_id", "year", "month", name="uq_monthly_summaries_period"),
    )
    op.create_index(op.f("ix_monthly_financial_summaries_id"), "monthly_financial_summaries", ["id"], unique=False)
    op.create_index(
        op.f("ix_monthly_financial_summaries_school_id"), "monthly_financial_summaries", ["school_id"], unique=False
    )

    op.create_table(
        "activity_logs",
        sa.Column("actor_id", sa.UUID(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("entity_type", sa.String(50), nullable=True),
        sa.Column("entity_id", sa.UUID(), nullable=True),
        sa.Column("correlation_id", sa.String(64), nullable=True),
        sa.Column("severity", _enum("activity_severity"), nullable=False),
        sa.Column("school_id", sa.UUID(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["actor_id"], ["users.id"], ondelete="SET NULL"),
        _school_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_activity_logs_id"), "activity_logs", ["id"], unique=False)
    op.create_index(op.f("ix_activity_logs_action"), "activity_logs", ["action"], unique=False)
    op.create_index(op.f("ix_activity_logs_school_id"), "activity_logs", ["school_id"], unique=False)
    op.create_index(op.f("ix_activity_logs_correlation_id"), "activity_logs", ["correlation_id"], unique=False)
    op.create_index("ix_activity_logs_school_created", "activity_logs", ["school_id", "created_at"], unique=False)


def downgrade() -> None:
    for table in (
        "activity_logs",
        "monthly_financial_summaries",
        "employee_salary_transactions",
        "teacher_payout_entries",
        "teacher_payouts",
        "manual_transactions",
        "debt_adjustments",
        "student_financials",
        "attendance",
        "payments",
        "enrollments",
        "classes",
        "users",
        "schools",
    ):
        op.drop_table(table)
    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
