# Shared pytest configuration and fixtures for all test types
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from slowapi import Limiter
from slowapi.util import get_remote_address
from unittest.mock import patch

# Create test limiter with no limits and in-memory storage
test_limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri="memory://",
)

# Patch the limiter before importing the app so decorators use test limiter
with patch("common.providers.rate_limiter.limiter.limiter", test_limiter):
    from api.main import app

from common.db.base import Base
from packages.auth.dependencies import get_current_active_user, get_current_user
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.auth.models.domain.roles import OrganizationRole
from packages.organizations.models.database.organization import (
    OrganizationEntity,
    OrganizationMemberEntity,
)
from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.domain.enums import (
    BillingCycle,
    PlanCode,
    SubscriptionStatus,
)
from packages.billing.models.domain.subscription import Subscription

# Registers every billing table on Base.metadata
import packages.billing.models.database  # noqa: F401

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

OWNER_USER_ID = 1001
OWNER_EMAIL = "owner@acme.test"
BILLING_CELLPHONE = "11987654321"
BILLING_TAX_ID = "11222333000181"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine and initialize schema."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_connection(test_engine):
    """Create test connection with outer transaction for rollback isolation."""
    async with test_engine.connect() as connection:
        trans = await connection.begin()
        yield connection
        await trans.rollback()


@pytest_asyncio.fixture(scope="function")
async def test_session_factory(test_connection):
    """Create session factory bound to test connection.

    Using join_transaction_mode="create_savepoint" so nested transaction()
    calls create savepoints instead of real nested transactions.
    """
    return async_sessionmaker(
        bind=test_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )


@pytest_asyncio.fixture(scope="function")
async def test_db(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function", autouse=True)
async def patch_lazy_sessions(test_session_factory, monkeypatch):
    """
    Patch session factories to use test database.

    This allows real transaction() and get_session() to run with proper
    commit/rollback/ContextVar semantics while using the test database.
    """
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocal", test_session_factory)
    monkeypatch.setattr(
        "common.db.scoped.AsyncSessionLocalReadonly", test_session_factory
    )


@pytest_asyncio.fixture(scope="function")
async def client(test_db: AsyncSession, test_user):
    """Create a test client acting as ``test_user``."""

    def override_get_current_user():
        return test_user

    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_current_active_user] = override_get_current_user

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def sample_organization(test_db: AsyncSession):
    """Organization with its owner as the only member."""
    organization = OrganizationEntity(name="Acme", owner_user_id=OWNER_USER_ID)
    test_db.add(organization)
    await test_db.flush()
    test_db.add(
        OrganizationMemberEntity(
            organization_id=organization.id,
            user_id=OWNER_USER_ID,
            role=OrganizationRole.OWNER.value,
        )
    )
    await test_db.commit()
    await test_db.refresh(organization)
    return organization


@pytest_asyncio.fixture(scope="function")
async def sample_subscription(test_db: AsyncSession, sample_organization) -> Subscription:
    """FREE subscription of ``sample_organization`` with a complete billing profile."""
    subscription = SubscriptionEntity(
        owner_user_id=OWNER_USER_ID,
        organization_id=sample_organization.id,
        status=SubscriptionStatus.FREE.value,
        plan_code=PlanCode.FREE.value,
        billing_cycle=BillingCycle.MONTHLY.value,
        cancel_at_period_end=False,
        billing_name="Acme Ltda",
        billing_cellphone=BILLING_CELLPHONE,
        billing_tax_id=BILLING_TAX_ID,
        billing_email=OWNER_EMAIL,
    )
    test_db.add(subscription)
    await test_db.commit()
    await test_db.refresh(subscription)
    return Subscription.model_validate(subscription)


@pytest_asyncio.fixture(scope="function")
async def test_user(sample_organization):
    """Owner of ``sample_organization``."""
    return AuthenticatedUser(
        user_id=OWNER_USER_ID,
        organization_id=sample_organization.id,
        role=OrganizationRole.OWNER,
        email=OWNER_EMAIL,
    )


@pytest_asyncio.fixture(scope="function")
async def second_organization(test_db: AsyncSession):
    """Organization owned by someone else."""
    organization = OrganizationEntity(name="Globex", owner_user_id=2002)
    test_db.add(organization)
    await test_db.flush()
    test_db.add(
        OrganizationMemberEntity(
            organization_id=organization.id,
            user_id=2002,
            role=OrganizationRole.OWNER.value,
        )
    )
    await test_db.commit()
    await test_db.refresh(organization)
    return organization
