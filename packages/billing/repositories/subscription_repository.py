"""
Repository for subscription management.
"""

from typing import Optional
from sqlalchemy import select

from common.repositories.base import BaseRepository
from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.domain.subscription import Subscription
from packages.billing.models.domain.enums import (
    BillingCycle,
    PlanCode,
    SubscriptionStatus,
)
from common.core.otel_axiom_exporter import trace_span


class SubscriptionRepository(BaseRepository[SubscriptionEntity, Subscription]):
    """Repository for managing organization subscriptions."""

    def __init__(self):
        super().__init__(SubscriptionEntity, Subscription)

    @trace_span
    async def get_by_organization_id(
        self, organization_id: int, for_update: bool = False
    ) -> Optional[Subscription]:
        """Get the subscription of an organization.

        ``for_update`` takes a row lock; only meaningful inside ``transaction()``.
        """
        query = select(SubscriptionEntity).where(
            SubscriptionEntity.organization_id == organization_id
        )
        if for_update:
            query = query.with_for_update()

        async with self._get_session() as session:
            result = await session.execute(query)
            db_subscription = result.scalar_one_or_none()
            return self._entity_to_domain(db_subscription) if db_subscription else None

    @trace_span
    async def list_by_owner(
        self, owner_user_id: int, for_update: bool = False
    ) -> list[Subscription]:
        """Get every subscription held by an owner, one per organization."""
        query = (
            select(SubscriptionEntity)
            .where(SubscriptionEntity.owner_user_id == owner_user_id)
            .order_by(SubscriptionEntity.id)
        )
        if for_update:
            query = query.with_for_update()

        async with self._get_session() as session:
            result = await session.execute(query)
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def create_free_if_missing(
        self, owner_user_id: int, organization_id: int
    ) -> bool:
        """
        Insert a FREE subscription unless the organization already has one.

        Returns True when this call created the row. Concurrent callers race
        on the unique organization_id; the losers simply see no insert.
        """
        async with self._get_session() as session:
            stmt = self._insert_ignoring_conflicts(
                session,
                {
                    "owner_user_id": owner_user_id,
                    "organization_id": organization_id,
                    "status": SubscriptionStatus.FREE.value,
                    "plan_code": PlanCode.FREE.value,
                    "billing_cycle": BillingCycle.MONTHLY.value,
                    "cancel_at_period_end": False,
                },
                index_elements=["organization_id"],
            ).returning(SubscriptionEntity.id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    @trace_span
    async def find_provider_customer_id(
        self, owner_user_id: int, tax_id: str, exclude_subscription_id: int
    ) -> Optional[str]:
        """Provider customer already created for this owner and tax id, if any."""
        async with self._get_session() as session:
            result = await session.execute(
                select(SubscriptionEntity.provider_customer_id)
                .where(
                    SubscriptionEntity.owner_user_id == owner_user_id,
                    SubscriptionEntity.billing_tax_id == tax_id,
                    SubscriptionEntity.id != exclude_subscription_id,
                    SubscriptionEntity.provider_customer_id.is_not(None),
                )
                .order_by(SubscriptionEntity.updated_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
