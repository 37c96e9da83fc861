"""
Global pytest fixtures for the Portalight test suite.

Provides:
- Async database session on a temporary SQLite file
- FastAPI app and async test client sharing that session
- Authenticated users per role
- Seed factories for teams, projects and cloud secrets
"""
import os
from contextlib import ExitStack
from typing import AsyncGenerator
from unittest.mock import patch
from uuid import uuid4

import pytest
import pytest_asyncio

# Set test environment BEFORE any portalight imports
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENCRYPTION_KEY"] = "32-byte-long-test-encryption-key"
os.environ["KDF_SALT"] = "S0RGX1NBTFRfRk9SX1RFU1RJTkdfMzJfQllURVNfT0s="  # Base64 for 'KDF_SALT_FOR_TESTING_32_BYTES_OK'
os.environ["JWT_SECRET"] = "test-jwt-secret-for-testing-at-least-32-bytes"
os.environ["DB_SSL_MODE"] = "disable"
os.environ["ENVIRONMENT"] = "development"

# Register every mapped table before the first create_all.
import portalight.models  # noqa: E402,F401


# ============================================================================
# Async Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def async_engine():
    """Create async SQLite engine for testing using a temporary file."""
    from sqlalchemy.ext.asyncio import create_async_engine

    db_file = f"test_{uuid4().hex}.sqlite"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_file}", echo=False)
    yield engine
    await engine.dispose()

    if os.path.exists(db_file):
        os.remove(db_file)


@pytest_asyncio.fixture
async def db_session(async_engine) -> AsyncGenerator:
    """Create database tables and provide async session."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from portalight.shared.db.base import Base

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest_asyncio.fixture
async def db(db_session):
    """Alias for db_session."""
    return db_session


# ============================================================================
# FastAPI Test Client Fixtures
# ============================================================================

@pytest.fixture
def app():
    from portalight.main import app as portalight_app

    return portalight_app


@pytest_asyncio.fixture
async def async_client(app, db, async_engine) -> AsyncGenerator:
    """Async test client; get_db and background-task sessions use the test DB."""
    from httpx import ASGITransport, AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from portalight.shared.db.session import get_db

    test_session_maker = async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    modules_to_patch = [
        "portalight.modules.provisioning.domain.service.async_session_maker",
    ]

    with ExitStack() as stack:
        for target in modules_to_patch:
            stack.enter_context(patch(target, test_session_maker))

        old_override = app.dependency_overrides.get(get_db)
        app.dependency_overrides[get_db] = lambda: db

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac

        if old_override:
            app.dependency_overrides[get_db] = old_override
        else:
            app.dependency_overrides.pop(get_db, None)


# ============================================================================
# Authentication Fixtures
# ============================================================================

def _user(role: str, **extra):
    from portalight.shared.core.auth import CurrentUser, UserRole

    return CurrentUser(
        id=uuid4(),
        email=f"{role}@portalight.dev",
        role=UserRole(role),
        **extra,
    )


@pytest.fixture
def lead_user():
    return _user("lead")


@pytest.fixture
def dev_user():
    return _user("dev", provisioning_permissions=["sqs"])


@pytest.fixture
def as_user(app):
    """Authenticate every request as the given user for the rest of the test."""
    from portalight.shared.core.auth import get_current_user

    def _login(user):
        app.dependency_overrides[get_current_user] = lambda: user
        return user

    yield _login
    app.dependency_overrides.pop(get_current_user, None)


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest_asyncio.fixture
async def team(db):
    from portalight.models.team import Team

    row = Team(name="payments-team")
    db.add(row)
    await db.commit()
    return row


@pytest_asyncio.fixture
async def project(db, team):
    from portalight.models.project import Project

    row = Project(name="payments", owner_team_id=team.id)
    db.add(row)
    await db.commit()
    return row


@pytest.fixture
def secret_factory(db):
    from portalight.models.cloud_secret import CloudSecret
    from portalight.shared.adapters.credential_vault import seal_aws_credentials

    async def _create(access_type: str = "read", region: str = "us-east-1"):
        row = CloudSecret(
            name=f"aws-{access_type}",
            region=region,
            account_id="123456789012",
            access_type=access_type,
            encrypted_credentials=seal_aws_credentials("AKIATEST", "secret-key"),
        )
        db.add(row)
        await db.commit()
        return row

    return _create


@pytest.fixture(autouse=True)
def set_testing_env():
    """Ensure TESTING is set for all tests."""
    os.environ["TESTING"] = "true"
    yield
