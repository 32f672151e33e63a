"""
Test configuration and fixtures for the campus notices service.
"""
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-campus-notices")
os.environ.setdefault("ENVIRONMENT", "test")

from typing import AsyncGenerator, Dict

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from authentication.infrastructure.services import JWTTokenService
from config.base import get_settings
from config.database import build_database_engine, create_tables, get_database_session
from main import create_app
from notifications.domain.entities import AudienceRule, AudienceType
from notifications.infrastructure.repositories import (
    AudienceRuleRepository,
    NotificationRecipientRepository,
    NotificationRepository,
)
from users.domain.entities import User, UserRole
from users.infrastructure.repositories import UserRepository

CS_MAJOR_ID = 7
MATH_MAJOR_ID = 8
CS_DEPARTMENT_ID = 3


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh SQLite database file for each test."""
    test_engine = build_database_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite3'}"
    )
    await create_tables(test_engine)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(bind=engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def notification_repository(db_session) -> NotificationRepository:
    return NotificationRepository(db_session)


@pytest.fixture
def rule_repository(db_session) -> AudienceRuleRepository:
    return AudienceRuleRepository(db_session)


@pytest.fixture
def recipient_repository(db_session) -> NotificationRecipientRepository:
    return NotificationRecipientRepository(db_session)


async def _create_user(session: AsyncSession, **fields) -> User:
    return await UserRepository(session).create(User(**fields))


@pytest_asyncio.fixture
async def admin_user(db_session) -> User:
    """Create an administrator."""
    return await _create_user(
        db_session,
        email="admin@campus.edu",
        full_name="Campus Admin",
        role=UserRole.ADMINISTRATOR,
    )


@pytest_asyncio.fixture
async def manager_user(db_session) -> User:
    """Create an academic manager."""
    return await _create_user(
        db_session,
        email="manager@campus.edu",
        full_name="Academic Manager",
        role=UserRole.ACADEMIC_MANAGER,
    )


@pytest_asyncio.fixture
async def cs_student(db_session) -> User:
    """Create a computer science student."""
    return await _create_user(
        db_session,
        email="ada@campus.edu",
        full_name="Ada Student",
        role=UserRole.STUDENT,
        major_id=CS_MAJOR_ID,
    )


@pytest_asyncio.fixture
async def math_student(db_session) -> User:
    """Create a mathematics student."""
    return await _create_user(
        db_session,
        email="emmy@campus.edu",
        full_name="Emmy Student",
        role=UserRole.STUDENT,
        major_id=MATH_MAJOR_ID,
    )


@pytest_asyncio.fixture
async def cs_lecturer(db_session) -> User:
    """Create a lecturer of the computer science department."""
    return await _create_user(
        db_session,
        email="alan@campus.edu",
        full_name="Alan Lecturer",
        role=UserRole.LECTURER,
        department_id=CS_DEPARTMENT_ID,
    )


@pytest.fixture
def everyone_rules():
    return [AudienceRule(audience_type=AudienceType.ALL_USERS)]


@pytest.fixture
def cs_student_rules():
    return [
        AudienceRule(audience_type=AudienceType.ROLE, audience_value="STUDENT"),
        AudienceRule(audience_type=AudienceType.MAJOR, audience_value=str(CS_MAJOR_ID)),
    ]


@pytest.fixture
def app(engine):
    """Create the application with its database session bound to the test database."""
    application = create_app(run_startup_migrations=False)

    async def override_get_database_session():
        async with AsyncSession(bind=engine, expire_on_commit=False) as session:
            yield session

    application.dependency_overrides[get_database_session] = (
        override_get_database_session
    )

    yield application

    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create an async test client."""
    async with httpx.AsyncClient(
        base_url="http://test", transport=httpx.ASGITransport(app=app)
    ) as client:
        yield client


async def auth_headers_for(user: User) -> Dict[str, str]:
    """Authentication headers carrying a real access token for `user`."""
    token = await JWTTokenService(get_settings()).create_access_token(user)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def admin_headers(admin_user) -> Dict[str, str]:
    return await auth_headers_for(admin_user)


@pytest_asyncio.fixture
async def manager_headers(manager_user) -> Dict[str, str]:
    return await auth_headers_for(manager_user)


@pytest_asyncio.fixture
async def cs_student_headers(cs_student) -> Dict[str, str]:
    return await auth_headers_for(cs_student)


@pytest_asyncio.fixture
async def math_student_headers(math_student) -> Dict[str, str]:
    return await auth_headers_for(math_student)


@pytest_asyncio.fixture
async def cs_lecturer_headers(cs_lecturer) -> Dict[str, str]:
    return await auth_headers_for(cs_lecturer)
