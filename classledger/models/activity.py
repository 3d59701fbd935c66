"""Domain 5: Activity Log"""

from sqlalchemy import Column, ForeignKey, Index, JSON, String, Text, Uuid

from classledger.models.base import BaseModel, SchoolScopedMixin, enum_column_type
from classledger.models.enums import ActivitySeverity


class ActivityLog(BaseModel, SchoolScopedMixin):
    """Human-readable trail of who did what; never read by the ledger."""
    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_school_created", "school_id", "created_at"),
    )

    actor_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Uuid(as_uuid=True), nullable=True)
    correlation_id = Column(String(64), nullable=True, index=True)
    severity = Column(enum_column_type(ActivitySeverity, "activity_severity"), default=ActivitySeverity.INFO, nullable=False)
