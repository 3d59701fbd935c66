"""Fire-and-forget activity trail."""

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from classledger.core.logging import correlation_id_var, get_logger
from classledger.models.activity import ActivityLog
from classledger.models.enums import ActivitySeverity

logger = get_logger(__name__)


class ActivityLogSink:
    """
    Writes activity rows in a session of its own, after the ledger
    transaction has committed. A failure here is logged and dropped; it can
    never undo or block a ledger write. Rows written while serving an HTTP
    request carry its request id.
    """

    @staticmethod
    async def emit(
        db: AsyncSession,
        school_id: UUID,
        actor_id: Optional[UUID],
        action: str,
        description: str,
        details: Optional[Dict[str, Any]] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        severity: ActivitySeverity = ActivitySeverity.INFO,
    ) -> bool:
        try:
            async with AsyncSession(db.bind, expire_on_commit=False) as log_session:
                log_session.add(
                    ActivityLog(
                        school_id=school_id,
                        actor_id=actor_id,
                        action=action,
                        description=description,
                        details=details,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        severity=severity,
                        correlation_id=correlation_id_var.get(),
                    )
                )
                await log_session.commit()
            return True
        except SQLAlchemyError:
            logger.warning(
                "Activity log write failed",
                extra={"action": action, "school_id": str(school_id)},
                exc_info=True,
            )
            return False
