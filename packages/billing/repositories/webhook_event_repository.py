"""
Repository for the payment webhook event log.
"""

from datetime import datetime
from typing import Any, Optional
from sqlalchemy import select, update

from common.repositories.base import BaseRepository
from packages.billing.models.database.webhook_event import WebhookEventEntity
from packages.billing.models.domain.enums import WebhookProcessingStatus
from packages.billing.models.domain.webhooks import WebhookEvent
from common.core.otel_axiom_exporter import trace_span


class WebhookEventRepository(BaseRepository[WebhookEventEntity, WebhookEvent]):
    def __init__(self):
        super().__init__(WebhookEventEntity, WebhookEvent)

    @trace_span
    async def get_by_event_id(self, event_id: str) -> Optional[WebhookEvent]:
        async with self._get_session() as session:
            result = await session.execute(
                select(WebhookEventEntity).where(WebhookEventEntity.event_id == event_id)
            )
            db_event = result.scalar_one_or_none()
            return self._entity_to_domain(db_event) if db_event else None

    @trace_span
    async def record_if_new(
        self, event_id: str, provider: str, event_type: str, payload: dict[str, Any]
    ) -> bool:
        """Store a received event. False means it was delivered before."""
        async with self._get_session() as session:
            stmt = self._insert_ignoring_conflicts(
                session,
                {
                    "event_id": event_id,
                    "provider": provider,
                    "event_type": event_type,
                    "status": WebhookProcessingStatus.RECEIVED.value,
                    "payload": payload,
                },
                index_elements=["event_id"],
            ).returning(WebhookEventEntity.id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    @trace_span
    async def mark(
        self,
        event_id: str,
        status: WebhookProcessingStatus,
        error_message: Optional[str] = None,
        processed_at: Optional[datetime] = None,
    ) -> None:
        async with self._get_session() as session:
            await session.execute(
                update(WebhookEventEntity)
                .where(WebhookEventEntity.event_id == event_id)
                .values(
                    status=status.value,
                    error_message=error_message,
                    processed_at=processed_at,
                )
            )
