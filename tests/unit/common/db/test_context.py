import asyncio

import pytest

from common.db.context import (
    get_current_session,
    in_transaction,
    is_readonly_forced,
    readonly,
    reset_current_session,
    set_current_session,
)
from common.db.scoped import transaction


class TestSessionContext:
    def test_nothing_published_by_default(self):
        assert is_readonly_forced() is False
        assert get_current_session() is None
        assert in_transaction(readonly=True) is False

    async def test_read_and_write_sessions_are_separate(self, test_db):
        token = set_current_session(test_db, readonly=True)
        try:
            assert get_current_session(readonly=True) is test_db
            assert get_current_session(readonly=False) is None
        finally:
            reset_current_session(token, readonly=True)

        assert get_current_session(readonly=True) is None

    async def test_tasks_do_not_share_sessions(self, test_db):
        seen = {}

        async def publish(name: str, delay: float):
            token = set_current_session(test_db)
            await asyncio.sleep(delay)
            seen[name] = get_current_session() is test_db
            reset_current_session(token)

        async def observe():
            await asyncio.sleep(0.005)
            seen["observer"] = get_current_session()

        await asyncio.gather(publish("writer", 0.01), observe())

        assert seen == {"writer": True, "observer": None}


class TestReadonly:
    async def test_forces_read_sessions_for_the_call(self):
        @readonly
        async def list_checkouts(organization_id: int):
            return organization_id, is_readonly_forced()

        assert await list_checkouts(7) == (7, True)
        assert is_readonly_forced() is False

    async def test_resets_after_exception(self):
        @readonly
        async def failing():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await failing()
        assert is_readonly_forced() is False

    async def test_transactions_inside_are_readonly(self):
        @readonly
        async def read_inside_transaction():
            async with transaction() as session:
                return get_current_session(readonly=True) is session

        assert await read_inside_transaction() is True
        assert get_current_session(readonly=True) is None
