"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Configure settings before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_DEFAULT"] = "10000/minute"

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Iterable, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leave_engine.common.constants import AccrualMethod, UserRole
from leave_engine.common.rate_limit import limiter
from leave_engine.config import settings
from leave_engine.database import Base, get_db
from leave_engine.dependencies import get_employee_directory, get_holiday_provider
from leave_engine.main import create_app

# Register every mapped table on Base.metadata
import leave_engine.common.audit  # noqa: F401
import leave_engine.leave.models  # noqa: F401
from leave_engine.leave.models import LeaveType
from tests.fakes import FixedHolidays, InMemoryDirectory

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )


TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Collaborator fakes ──────────────────────────────────────────────

@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory()


@pytest.fixture
def holidays() -> FixedHolidays:
    return FixedHolidays()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(directory, holidays):
    """Create a fresh app instance with DB and collaborators overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_employee_directory] = lambda: directory
    application.dependency_overrides[get_holiday_provider] = lambda: holidays
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    return TestSessionFactory


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Tenancy / identities ────────────────────────────────────────────

@pytest.fixture
def company_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def employee_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def manager_id() -> uuid.UUID:
    return uuid.uuid4()


# ── Model factories ─────────────────────────────────────────────────

@pytest.fixture
def make_leave_type(db, company_id):
    """Insert and commit a leave type for the test company."""

    async def _make(
        *,
        code: str = "annual",
        name: str = "Annual Leave",
        default_days_per_year: Decimal = Decimal("15"),
        is_paid: bool = True,
        max_carry_over: Decimal = Decimal("5"),
        accrual_method: AccrualMethod = AccrualMethod.annual,
        requires_attachment: bool = False,
        attachment_required_after_days: Optional[Decimal] = None,
        min_consecutive_days: Optional[Decimal] = None,
        max_consecutive_days: Optional[Decimal] = None,
        is_active: bool = True,
        sort_order: int = 0,
        for_company: Optional[uuid.UUID] = None,
    ) -> LeaveType:
        leave_type = LeaveType(
            company_id=for_company or company_id,
            code=code,
            name=name,
            default_days_per_year=default_days_per_year,
            is_paid=is_paid,
            accrual_method=accrual_method,
            max_carry_over=max_carry_over,
            requires_approval=True,
            requires_attachment=requires_attachment,
            attachment_required_after_days=attachment_required_after_days,
            min_consecutive_days=min_consecutive_days,
            max_consecutive_days=max_consecutive_days,
            sort_order=sort_order,
            is_active=is_active,
        )
        db.add(leave_type)
        await db.commit()
        return leave_type

    return _make


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    user_id: uuid.UUID,
    company_id: uuid.UUID,
    roles: Iterable[UserRole] = (UserRole.employee,),
    *,
    name: Optional[str] = None,
    expired: bool = False,
    token_type: str = "access",
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(user_id),
        "company_id": str(company_id),
        "roles": [r.value for r in roles],
        "type": token_type,
        "exp": exp,
    }
    if name:
        payload["name"] = name
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def auth_headers(company_id):
    """Return a builder for Bearer headers in the test company."""

    def _headers(
        user_id: uuid.UUID,
        *roles: UserRole,
        name: Optional[str] = None,
        company: Optional[uuid.UUID] = None,
    ) -> dict[str, str]:
        token = create_access_token(
            user_id,
            company or company_id,
            roles or (UserRole.employee,),
            name=name,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def token_factory():
    return create_access_token
