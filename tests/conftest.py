"""Shared pytest fixtures: in-memory SQLite database, seeded school, HTTP client."""

import os
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import pytest

# Settings are read at import time; pin a self-contained test configuration first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import classledger.models  # noqa: F401  (register every table on the metadata)
from classledger.config import settings
from classledger.core.security import create_access_token
from classledger.database import Base, get_db
from classledger.main import app
from classledger.models.academic import Class
from classledger.models.enums import PricingModel, TeacherCutMode, UserRole
from classledger.models.school import School, User
from classledger.schemas.enrollment import EnrollmentCreate
from classledger.services.enrollment_service import EnrollmentService

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def engine():
    """Fresh in-memory database per test; StaticPool keeps it on one connection."""
    test_engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    """Session handed to services under test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def unique_suffix() -> str:
    """Unique suffix for test data to avoid collisions."""
    return str(uuid.uuid4())[:8]


@dataclass
class SchoolSeed:
    """
    A school with its staff, students and classes.

    Rows are written through a separate, closed session, so they stay
    readable here even after a service under test rolls its own session back.
    """
    school: School
    manager: User
    teacher: User
    student: User
    other_student: User
    session_class: Class
    cycle_class: Class

    @property
    def school_id(self) -> uuid.UUID:
        return self.school.id


async def _seed_school(session_factory, suffix: str, name: str = "Test School") -> SchoolSeed:
    async with session_factory() as session:
        school = School(name=f"{name} {suffix}", is_active=True)
        session.add(school)
        await session.flush()

        def user(role: UserRole, first: str, last: str) -> User:
            member = User(
                school_id=school.id,
                email=f"{first.lower()}.{last.lower()}_{suffix}@test.example.com",
                first_name=first,
                last_name=last,
                role=role,
                is_active=True,
            )
            session.add(member)
            return member

        manager = user(UserRole.MANAGER, "Mona", "Manager")
        teacher = user(UserRole.TEACHER, "Tariq", "Teacher")
        student = user(UserRole.STUDENT, "Amel", "Benali")
        other_student = user(UserRole.STUDENT, "Yacine", "Cherif")
        await session.flush()

        session_class = Class(
            school_id=school.id,
            name=f"Maths {suffix}",
            teacher_id=teacher.id,
            payment_model=PricingModel.PER_SESSION,
            session_price=Decimal("500.00"),
            absence_rule=False,
            teacher_cut_mode=TeacherCutMode.PERCENTAGE,
            teacher_cut_value=Decimal("50.00"),
        )
        cycle_class = Class(
            school_id=school.id,
            name=f"Physics {suffix}",
            teacher_id=teacher.id,
            payment_model=PricingModel.PER_CYCLE,
            cycle_size=4,
            cycle_price=Decimal("2000.00"),
            absence_rule=True,
            teacher_cut_mode=TeacherCutMode.FIXED,
            teacher_cut_value=Decimal("800.00"),
        )
        session.add_all([session_class, cycle_class])
        await session.commit()

        return SchoolSeed(
            school=school,
            manager=manager,
            teacher=teacher,
            student=student,
            other_student=other_student,
            session_class=session_class,
            cycle_class=cycle_class,
        )


@pytest.fixture
async def seed(session_factory, unique_suffix) -> SchoolSeed:
    return await _seed_school(session_factory, unique_suffix)


@pytest.fixture
async def other_seed(session_factory, unique_suffix) -> SchoolSeed:
    """A second, unrelated school for tenant-isolation checks."""
    return await _seed_school(session_factory, f"{unique_suffix}x", name="Other School")


@pytest.fixture
def enroll(db):
    """Create an enrollment and return its id."""

    async def _enroll(seed: SchoolSeed, cls: Class, student: Optional[User] = None) -> uuid.UUID:
        student = student or seed.student
        enrollment = await EnrollmentService.create_enrollment(
            db, seed.school_id, EnrollmentCreate(student_id=student.id, class_id=cls.id)
        )
        return enrollment.id

    return _enroll


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api_base() -> str:
    """Base URL for API requests."""
    return f"http://test{settings.API_V1_PREFIX}"


@pytest.fixture
async def async_client(session_factory, api_base: str):
    """Async HTTP client against the app, bound to the per-test database."""

    async def _get_test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    transport = ASGITransport(app=app)
    client = AsyncClient(transport=transport, base_url=api_base, timeout=30.0)
    yield client
    await client.aclose()
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def manager_headers(seed: SchoolSeed) -> dict:
    return auth_headers(seed.manager)
