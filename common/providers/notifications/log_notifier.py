from common.core.otel_axiom_exporter import get_logger, log_span_event

from .interface import NotificationProviderInterface
from .models import NotificationEvent

logger = get_logger(__name__)


class LogNotificationProvider(NotificationProviderInterface):
    """Writes notifications to the log and the current trace span."""

    async def notify(self, event: NotificationEvent) -> None:
        log_span_event(
            f"Notification: {event.kind}",
            {
                key: str(value)
                for key, value in event.model_dump(mode="json").items()
            },
        )
