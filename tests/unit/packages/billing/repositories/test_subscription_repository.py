"""
Unit tests for SubscriptionRepository.

Tests database operations for subscriptions without mocking the database.
"""

import pytest

from packages.billing.models.domain.enums import PlanCode, SubscriptionStatus
from packages.billing.models.domain.subscription import SubscriptionUpdateModel
from packages.billing.repositories.subscription_repository import SubscriptionRepository


@pytest.mark.asyncio
class TestSubscriptionRepository:
    async def test_create_free_if_missing(self, sample_organization):
        repo = SubscriptionRepository()

        created = await repo.create_free_if_missing(
            sample_organization.owner_user_id, sample_organization.id
        )
        again = await repo.create_free_if_missing(
            sample_organization.owner_user_id, sample_organization.id
        )

        assert created is True
        assert again is False
        subscription = await repo.get_by_organization_id(sample_organization.id)
        assert subscription.status == SubscriptionStatus.FREE
        assert subscription.plan_code == PlanCode.FREE

    async def test_get_by_organization_id_missing(self):
        assert await SubscriptionRepository().get_by_organization_id(999999) is None

    async def test_list_by_owner(self, sample_subscription, second_organization):
        repo = SubscriptionRepository()
        await repo.create_free_if_missing(2002, second_organization.id)

        owned = await repo.list_by_owner(sample_subscription.owner_user_id)

        assert [s.id for s in owned] == [sample_subscription.id]

    async def test_update_can_clear_columns(self, sample_subscription):
        repo = SubscriptionRepository()
        await repo.update(
            sample_subscription.id,
            SubscriptionUpdateModel(pending_plan_code=PlanCode.PRO_100),
        )

        cleared = await repo.update(
            sample_subscription.id, SubscriptionUpdateModel(pending_plan_code=None)
        )

        assert cleared.pending_plan_code is None
        assert cleared.plan_code == PlanCode.FREE

    async def test_compare_and_update(self, sample_subscription):
        repo = SubscriptionRepository()
        move = SubscriptionUpdateModel(status=SubscriptionStatus.TRIALING)

        first = await repo.compare_and_update(
            sample_subscription.id, {"status": SubscriptionStatus.FREE.value}, move
        )
        second = await repo.compare_and_update(
            sample_subscription.id, {"status": SubscriptionStatus.FREE.value}, move
        )

        assert first is True
        assert second is False
        assert (await repo.get(sample_subscription.id)).status == SubscriptionStatus.TRIALING
