"""Base Models and Mixins for DRY principles"""

import uuid
from sqlalchemy import Column, DateTime, Boolean, Enum, ForeignKey, Uuid
from sqlalchemy.orm import declared_attr

from classledger.database import Base
from classledger.utils.time import get_utc_now


class BaseModel(Base):
    """
    Base model class with common fields for all models.

    Provides:
    - UUID primary key
    - created_at timestamp
    - updated_at timestamp
    """
    __abstract__ = True

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    created_at = Column(DateTime, default=get_utc_now, nullable=False)
    updated_at = Column(DateTime, default=get_utc_now, onupdate=get_utc_now, nullable=False)


class SchoolScopedMixin:
    """
    Mixin for multi-tenant models scoped to a school.

    Provides:
    - school_id foreign key
    """

    @declared_attr
    def school_id(cls):
        return Column(
            Uuid(as_uuid=True),
            ForeignKey("schools.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )


class StatusMixin:
    """
    Mixin for models with active/inactive status.

    Provides:
    - is_active boolean flag
    """
    is_active = Column(Boolean, default=True, nullable=False, index=True)


def enum_column_type(enum_cls, name: str):
    """Enum type persisted by value ("per_session"), not by member name."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
