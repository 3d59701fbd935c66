"""Domain 1: Tenant and User Models"""

from sqlalchemy import Column, String, Boolean
from sqlalchemy.orm import relationship

from classledger.models.base import BaseModel, SchoolScopedMixin, StatusMixin, enum_column_type
from classledger.models.enums import UserRole


class School(BaseModel, StatusMixin):
    """
    Tenant/School model - the multi-tenant anchor.
    Every ledger row carries the school it belongs to.
    """
    __tablename__ = "schools"

    name = Column(String(255), nullable=False)

    users = relationship("User", back_populates="school", cascade="all, delete-orphan")
    classes = relationship("Class", back_populates="school", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<School {self.name}>"


class User(BaseModel, SchoolScopedMixin):
    """
    Platform user (manager, staff, teacher, student).
    Accounts and credentials are owned by the auth service; this is the
    minimal shape the settlement engine reads.
    """
    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    role = Column(enum_column_type(UserRole, "user_role"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    school = relationship("School", back_populates="users")

    @property
    def full_name(self) -> str:
        """Get user's full name"""
        return f"{self.first_name} {self.last_name}"

    @property
    def is_manager(self) -> bool:
        """Managers and staff run the school's books"""
        return self.role in (UserRole.MANAGER, UserRole.STAFF)

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
