"""
Repository for checkout sessions.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import select, update

from common.repositories.base import BaseRepository
from packages.billing.models.database.checkout import CheckoutSessionEntity
from packages.billing.models.domain.checkout import CheckoutSession
from packages.billing.models.domain.enums import CheckoutStatus
from common.core.otel_axiom_exporter import trace_span


class CheckoutSessionRepository(BaseRepository[CheckoutSessionEntity, CheckoutSession]):
    """Repository for managing checkout sessions."""

    def __init__(self):
        super().__init__(CheckoutSessionEntity, CheckoutSession)

    async def _get_one_by(self, *conditions) -> Optional[CheckoutSession]:
        async with self._get_session() as session:
            result = await session.execute(select(CheckoutSessionEntity).where(*conditions))
            db_checkout = result.scalar_one_or_none()
            return self._entity_to_domain(db_checkout) if db_checkout else None

    @trace_span
    async def get_by_checkout_id(self, checkout_id: str) -> Optional[CheckoutSession]:
        return await self._get_one_by(CheckoutSessionEntity.checkout_id == checkout_id)

    @trace_span
    async def get_by_provider_checkout_id(
        self, provider_checkout_id: str
    ) -> Optional[CheckoutSession]:
        return await self._get_one_by(
            CheckoutSessionEntity.provider_checkout_id == provider_checkout_id
        )

    @trace_span
    async def list_by_organization(
        self, organization_id: int, limit: int = 20
    ) -> list[CheckoutSession]:
        """Most recent checkout sessions of an organization first."""
        async with self._get_session() as session:
            result = await session.execute(
                select(CheckoutSessionEntity)
                .where(CheckoutSessionEntity.organization_id == organization_id)
                .order_by(CheckoutSessionEntity.id.desc())
                .limit(limit)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def expire_stale_pending(self, organization_id: int, now: datetime) -> int:
        """Close PENDING sessions whose ``expires_at`` has passed."""
        async with self._get_session() as session:
            result = await session.execute(
                update(CheckoutSessionEntity)
                .where(
                    CheckoutSessionEntity.organization_id == organization_id,
                    CheckoutSessionEntity.status == CheckoutStatus.PENDING.value,
                    CheckoutSessionEntity.expires_at <= now,
                )
                .values(
                    status=CheckoutStatus.EXPIRED.value,
                    failure_reason="Checkout session expired before payment",
                )
            )
            return result.rowcount or 0
