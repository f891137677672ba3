from typing import Optional

from common.core.config import settings

from .interface import NotificationProviderInterface
from .http_notifier import HttpNotificationProvider
from .log_notifier import LogNotificationProvider
from .provider_enum import NotificationProviderType


def get_notification_provider(
    provider_type: Optional[str] = None,
) -> NotificationProviderInterface:
    """
    Get notification provider instance.

    Args:
        provider_type: 'log' or 'http'. Defaults to 'http' when a relay URL is
            configured, otherwise 'log'.
    """
    if provider_type is None:
        provider_type = (
            NotificationProviderType.HTTP
            if settings.notification_webhook_url
            else NotificationProviderType.LOG
        )

    match provider_type.lower():
        case NotificationProviderType.LOG:
            return LogNotificationProvider()
        case NotificationProviderType.HTTP:
            return HttpNotificationProvider()
        case _:
            raise ValueError(f"Unknown notification provider type: {provider_type}")
