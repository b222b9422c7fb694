"""
Shared fixtures for FundHub backend integration tests.

Uses TEST_DATABASE_URL (a local SQLite file through aiosqlite by default;
point it at a PostgreSQL test database to exercise row locks and partial
indexes). Each test function gets its own session; tables are created before
and dropped after every test so each test starts with a clean slate.
"""
from __future__ import annotations

import os
import tempfile
from datetime import date
from typing import AsyncGenerator, Optional

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Override settings *before* any app module is imported, so that
# settings and the global engine point at the test environment.
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///./test_fundhub.db")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["STORAGE_DIR"] = tempfile.mkdtemp(prefix="fundhub-test-")
os.environ["SYSTEM_ADMIN_EMAILS"] = "root@example.com"
os.environ["RESEND_API_KEY"] = ""
os.environ["ADMIN_NOTIFICATION_EMAILS"] = ""
os.environ["BRAND"] = "test"

from fundhub.database import Base, get_db  # noqa: E402
from fundhub.main import app  # noqa: E402
from fundhub.models.database_models import (  # noqa: E402
    EntityType,
    Fund,
    FundMember,
    FundStatus,
    Profile,
    ProfileRole,
)


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a DB session for each test. After the test, all tables are
    dropped so the next test starts from an empty schema.
    """
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the DB dependency
    overridden to use the per-test session.
    """

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> Profile:
    """ADMIN profile matching ADMIN_HEADERS."""
    return await create_profile(
        db_session, name="Admin", email=ADMIN_HEADERS["X-User-Email"],
        user_id=ADMIN_HEADERS["X-User-Id"], role=ProfileRole.ADMIN,
    )


@pytest_asyncio.fixture
async def system_admin(db_session: AsyncSession) -> Profile:
    """ADMIN profile whose email is listed in SYSTEM_ADMIN_EMAILS."""
    return await create_profile(
        db_session, name="Root", email=SYSTEM_ADMIN_HEADERS["X-User-Email"],
        user_id=SYSTEM_ADMIN_HEADERS["X-User-Id"], role=ProfileRole.ADMIN,
    )


@pytest_asyncio.fixture
async def fund(db_session: AsyncSession) -> Fund:
    """A fund open for applications, with a closing date set."""
    return await create_fund(db_session)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

AUTH_HEADERS = {
    "X-User-Id": "test-user-1",
    "X-User-Email": "test1@example.com",
    "X-User-Name": "Test User 1",
}

AUTH_HEADERS_USER2 = {
    "X-User-Id": "test-user-2",
    "X-User-Email": "test2@example.com",
    "X-User-Name": "Test User 2",
}

ADMIN_HEADERS = {
    "X-User-Id": "admin-user",
    "X-User-Email": "admin@example.com",
    "X-User-Name": "Admin",
}

SYSTEM_ADMIN_HEADERS = {
    "X-User-Id": "root-user",
    "X-User-Email": "root@example.com",
    "X-User-Name": "Root",
}


async def create_profile(
    db: AsyncSession,
    name: str,
    email: str,
    user_id: Optional[str] = None,
    role: ProfileRole = ProfileRole.USER,
    entity_type: EntityType = EntityType.INDIVIDUAL,
    birth_date: Optional[str] = "1980-01-01",
    business_number: Optional[str] = None,
    phone: str = "010-1234-5678",
    address: str = "서울특별시 강남구 테헤란로 1",
) -> Profile:
    profile = Profile(
        user_id=user_id,
        name=name,
        email=email,
        role=role,
        entity_type=entity_type,
        birth_date=birth_date if entity_type == EntityType.INDIVIDUAL else None,
        business_number=business_number,
        phone=phone,
        address=address,
    )
    db.add(profile)
    await db.flush()
    return profile


async def create_fund(db: AsyncSession, **overrides) -> Fund:
    values = dict(
        name="테스트 벤처투자조합 1호",
        abbreviation="테스트1호",
        status=FundStatus.READY,
        closed_at=date(2026, 3, 31),
        address="서울특별시 강남구 테헤란로 1",
        par_value=1_000_000,
        total_cap=100_000_000,
        duration=5,
        min_units=1,
        gp_id=[],
    )
    values.update(overrides)
    fund = Fund(**values)
    db.add(fund)
    await db.flush()
    return fund


async def add_member(
    db: AsyncSession,
    fund: Fund,
    profile: Profile,
    units: int = 10,
    gp: bool = False,
) -> FundMember:
    member = FundMember(fund_id=fund.id, profile=profile, investment_units=units, total_units=units)
    db.add(member)
    if gp:
        fund.gp_id = [*(fund.gp_id or []), profile.id]
    await db.flush()
    return member
