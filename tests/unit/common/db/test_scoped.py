import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from common.db.base import Base
from common.db.context import get_current_session, in_transaction
from common.db.scoped import get_session, transaction
from packages.organizations.models.database.organization import OrganizationEntity


# Create a separate test engine for scoped tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def scoped_test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def scoped_session_factory(scoped_test_engine):
    return async_sessionmaker(
        scoped_test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def patch_session_factories(scoped_session_factory, monkeypatch):
    """Patch the session factories in scoped.py to use the scoped test database."""
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocal", scoped_session_factory)
    monkeypatch.setattr(
        "common.db.scoped.AsyncSessionLocalReadonly", scoped_session_factory
    )
    yield


async def organization_names(session_factory) -> list[str]:
    async with session_factory() as session:
        result = await session.execute(text("SELECT name FROM organizations ORDER BY id"))
        return [row[0] for row in result.fetchall()]


class TestTransaction:
    """Test the transaction() context manager with a real database."""

    async def test_commits_on_success(
        self, patch_session_factories, scoped_session_factory
    ):
        async with transaction() as session:
            session.add(OrganizationEntity(name="Committed", owner_user_id=1))

        assert await organization_names(scoped_session_factory) == ["Committed"]

    async def test_rolls_back_on_exception(
        self, patch_session_factories, scoped_session_factory
    ):
        with pytest.raises(ValueError):
            async with transaction() as session:
                session.add(OrganizationEntity(name="Rolled back", owner_user_id=1))
                await session.flush()
                raise ValueError("boom")

        assert await organization_names(scoped_session_factory) == []

    async def test_sets_and_clears_context(self, patch_session_factories):
        async with transaction() as session:
            assert get_current_session() is session
            assert in_transaction() is True

        assert get_current_session() is None
        assert in_transaction() is False

    async def test_nested_transaction_joins_outer(
        self, patch_session_factories, scoped_session_factory
    ):
        with pytest.raises(ValueError):
            async with transaction() as outer:
                outer.add(OrganizationEntity(name="Outer", owner_user_id=1))
                async with transaction() as inner:
                    assert inner is outer
                    inner.add(OrganizationEntity(name="Inner", owner_user_id=1))
                    await inner.flush()
                raise ValueError("outer fails after inner finished")

        assert await organization_names(scoped_session_factory) == []


class TestGetSession:
    async def test_standalone_get_session_commits(
        self, patch_session_factories, scoped_session_factory
    ):
        async with get_session() as session:
            session.add(OrganizationEntity(name="Standalone", owner_user_id=1))

        assert await organization_names(scoped_session_factory) == ["Standalone"]

    async def test_get_session_reuses_transaction_session(self, patch_session_factories):
        async with transaction() as tx_session:
            async with get_session() as session:
                assert session is tx_session

    async def test_concurrent_transactions_are_isolated(self, patch_session_factories):
        seen = {}

        async def worker(name: str):
            async with transaction() as session:
                await asyncio.sleep(0)
                seen[name] = (session, get_current_session())

        await asyncio.gather(worker("a"), worker("b"))

        assert seen["a"][0] is seen["a"][1]
        assert seen["b"][0] is seen["b"][1]
        assert seen["a"][0] is not seen["b"][0]
