"""
Repository for cancellation feedback.
"""

from sqlalchemy import select

from common.repositories.base import BaseRepository
from packages.billing.models.database.cancellation import CancellationFeedbackEntity
from packages.billing.models.domain.cancellation import CancellationFeedback
from common.core.otel_axiom_exporter import trace_span


class CancellationFeedbackRepository(
    BaseRepository[CancellationFeedbackEntity, CancellationFeedback]
):
    def __init__(self):
        super().__init__(CancellationFeedbackEntity, CancellationFeedback)

    @trace_span
    async def list_by_subscription(
        self, subscription_id: int
    ) -> list[CancellationFeedback]:
        async with self._get_session() as session:
            result = await session.execute(
                select(CancellationFeedbackEntity)
                .where(CancellationFeedbackEntity.subscription_id == subscription_id)
                .order_by(CancellationFeedbackEntity.id)
            )
            return self._entities_to_domain(result.scalars().all())
