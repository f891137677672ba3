from typing import Optional

import httpx

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger, trace_span

from .interface import NotificationProviderInterface
from .models import NotificationEvent

logger = get_logger(__name__)


class HttpNotificationProvider(NotificationProviderInterface):
    """Relays notifications as JSON POSTs to a configured webhook."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.notification_webhook_url
        if not self.url:
            raise ValueError("Notification webhook URL is not configured")
        self.timeout = timeout or settings.notification_timeout_seconds
        self._transport = transport

    @trace_span
    async def notify(self, event: NotificationEvent) -> None:
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            response = await client.post(self.url, json=event.model_dump(mode="json"))
            response.raise_for_status()

        logger.info(
            f"Relayed notification {event.kind}",
            extra={"kind": event.kind, "status_code": response.status_code},
        )
