import pytest
import pytest_asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import event, pool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from common.db.base import Base
from packages.billing.providers.payment.models import ProviderCheckout, ProviderCustomer

FIXED_NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_span():
    """Create a mock span instance for testing telemetry."""
    span = MagicMock()
    span.__enter__ = MagicMock(return_value=span)
    span.__exit__ = MagicMock(return_value=None)
    span.__aenter__ = AsyncMock(return_value=span)
    span.__aexit__ = AsyncMock(return_value=None)
    return span


@pytest.fixture
def mock_payment_provider():
    """Create a mocked payment provider (AbacatePay)."""
    provider = AsyncMock()
    provider.create_checkout_session = AsyncMock(
        return_value=ProviderCheckout(
            id="bill_mock123", url="https://pay.abacatepay.com/bill_mock123"
        )
    )
    provider.create_customer = AsyncMock(return_value=ProviderCustomer(id="cust_mock123"))
    provider.list_checkouts = AsyncMock(return_value=[])
    provider.simulate_payment = AsyncMock(return_value={"status": "PAID"})
    provider.health_check = AsyncMock(return_value=True)
    return provider


@pytest.fixture
def mock_notifier():
    """Create a mocked notification provider."""
    notifier = AsyncMock()
    notifier.notify = AsyncMock(return_value=None)
    return notifier


class MutableClock:
    """Clock the test can move forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return MutableClock(FIXED_NOW)


@pytest_asyncio.fixture
async def file_session_factory(tmp_path, monkeypatch):
    """Sessions on a file-backed database, one connection per session."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}",
        poolclass=pool.NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        # Writers queue on the database lock, like row locks on PostgreSQL
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocal", factory)
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocalReadonly", factory)
    yield factory
    await engine.dispose()
