import os

# Settings are read at import time, so the environment must be ready before posted.* is imported.
os.environ.setdefault("RAW_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("STRIPE_PRICE_ID", "price_test_123")
os.environ.setdefault("FAL_KEY", "fal-test-key")
os.environ.setdefault("OPENROUTER_API_KEY", "or-test-key")

import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient
from httpx import ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from posted.main import app
from posted.database import get_db
from posted.core.dependencies import (
    get_current_user_with_provisioning, get_generation_poller, get_optional_user,
    get_status_cache, get_stripe_gateway,
)
from posted.models.base import Base
from posted.models.organization import Organization
from posted.models.organization_member import MemberRole, OrganizationMember
from posted.models.user import User
from posted.services.generation_service import GenerationPoller
from posted.services.subscription_gate import SubscriptionStatusCache
from tests.fakes import FakeFalClient, FakeStripeGateway, no_sleep

# CRITICAL: Use in-memory SQLite for tests to avoid connection conflicts
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    poolclass=StaticPool, # Required for SQLite
    connect_args={"check_same_thread": False}, # Required for SQLite
)

TestingSessionLocal = async_sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,  # CRITICAL: Prevents DetachedInstanceError
)


# -----------------------------------------------------------------------------
# Database and client
# -----------------------------------------------------------------------------

@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Creates a database session for the test.
    This is the SINGLE source of truth for the database session.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestingSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def stripe_gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture
def status_cache() -> SubscriptionStatusCache:
    return SubscriptionStatusCache()


@pytest.fixture
def fal_client() -> FakeFalClient:
    return FakeFalClient()


@pytest_asyncio.fixture(scope="function")
async def test_client(
    db_session: AsyncSession,
    stripe_gateway: FakeStripeGateway,
    status_cache: SubscriptionStatusCache,
    fal_client: FakeFalClient,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Creates an HTTP client with the database and external services overridden.
    Authentication is left alone; use `as_user` to log a user in.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_gateway] = lambda: stripe_gateway
    app.dependency_overrides[get_status_cache] = lambda: status_cache
    app.dependency_overrides[get_generation_poller] = lambda: GenerationPoller(
        fal_client, interval=0, max_attempts=5, sleep=no_sleep
    )

    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


# -----------------------------------------------------------------------------
# Domain data
# -----------------------------------------------------------------------------

@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    async def _make_user(email: str = "owner@example.com", full_name: str | None = "Test Owner") -> User:
        user = User(supabase_auth_id=uuid.uuid4(), email=email, full_name=full_name)
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user
    return _make_user


@pytest_asyncio.fixture
async def make_org(db_session: AsyncSession):
    async def _make_org(
        name: str = "Test Org Inc.",
        members: tuple = (),
        role: str = MemberRole.OWNER.value,
        **fields,
    ) -> Organization:
        org = Organization(name=name, **fields)
        db_session.add(org)
        await db_session.flush()
        for member in members:
            db_session.add(OrganizationMember(organization_id=org.id, user_id=member.id, role=role))
        await db_session.commit()
        await db_session.refresh(org)
        return org
    return _make_org


@pytest_asyncio.fixture
async def user(make_user) -> User:
    return await make_user()


@pytest_asyncio.fixture
async def org(make_org, user) -> Organization:
    return await make_org(members=(user,))


@pytest.fixture
def as_user():
    """Overrides both auth dependencies so requests run as the given user."""
    def _as_user(current: User):
        async def override_get_user():
            return current
        app.dependency_overrides[get_current_user_with_provisioning] = override_get_user
        app.dependency_overrides[get_optional_user] = override_get_user
    return _as_user
