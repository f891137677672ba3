"""
Repository for monthly usage counters.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import select, update

from common.repositories.base import BaseRepository
from packages.billing.models.database.usage import UsageCounterEntity
from packages.billing.models.domain.usage import UsageCounter
from common.core.otel_axiom_exporter import trace_span


class UsageCounterRepository(BaseRepository[UsageCounterEntity, UsageCounter]):
    """Repository for managing usage counters."""

    def __init__(self):
        super().__init__(UsageCounterEntity, UsageCounter)

    def _counter_conditions(
        self, organization_id: int, metric_key: str, period_start: datetime
    ):
        return (
            UsageCounterEntity.organization_id == organization_id,
            UsageCounterEntity.metric_key == metric_key,
            UsageCounterEntity.period_start == period_start,
        )

    @trace_span
    async def get_counter(
        self, organization_id: int, metric_key: str, period_start: datetime
    ) -> Optional[UsageCounter]:
        async with self._get_session() as session:
            result = await session.execute(
                select(UsageCounterEntity).where(
                    *self._counter_conditions(organization_id, metric_key, period_start)
                )
            )
            db_counter = result.scalar_one_or_none()
            return self._entity_to_domain(db_counter) if db_counter else None

    @trace_span
    async def get_consumed(
        self, organization_id: int, metric_key: str, period_start: datetime
    ) -> int:
        """Consumed amount for the period, 0 when no counter exists yet."""
        async with self._get_session() as session:
            result = await session.execute(
                select(UsageCounterEntity.consumed).where(
                    *self._counter_conditions(organization_id, metric_key, period_start)
                )
            )
            return result.scalar_one_or_none() or 0

    @trace_span
    async def ensure_counter(
        self, organization_id: int, metric_key: str, period_start: datetime
    ) -> None:
        """Create the period row at zero if it does not exist."""
        async with self._get_session() as session:
            await session.execute(
                self._insert_ignoring_conflicts(
                    session,
                    {
                        "organization_id": organization_id,
                        "metric_key": metric_key,
                        "period_start": period_start,
                        "consumed": 0,
                    },
                    index_elements=["organization_id", "metric_key", "period_start"],
                )
            )

    @trace_span
    async def increment_within_limit(
        self,
        organization_id: int,
        metric_key: str,
        period_start: datetime,
        amount: int,
        limit: Optional[int],
    ) -> Optional[int]:
        """
        Add ``amount`` to the counter unless that would pass ``limit``.

        Check and increment are one conditional UPDATE, so concurrent callers
        can never push the counter over the limit. Returns the new consumed
        value, or None when the limit would have been exceeded.
        """
        conditions = list(
            self._counter_conditions(organization_id, metric_key, period_start)
        )
        if limit is not None:
            conditions.append(UsageCounterEntity.consumed + amount <= limit)

        async with self._get_session() as session:
            result = await session.execute(
                update(UsageCounterEntity)
                .where(*conditions)
                .values(consumed=UsageCounterEntity.consumed + amount)
                .returning(UsageCounterEntity.consumed)
            )
            return result.scalar_one_or_none()
