from .interface import NotificationProviderInterface
from .models import (
    MemberRemoved,
    NotificationEvent,
    PaymentApproved,
    PaymentOverdueReminder,
    UsageThresholdReached,
)
from .provider_enum import NotificationProviderType
from .factory import get_notification_provider

__all__ = [
    "NotificationProviderInterface",
    "NotificationEvent",
    "MemberRemoved",
    "PaymentApproved",
    "PaymentOverdueReminder",
    "UsageThresholdReached",
    "NotificationProviderType",
    "get_notification_provider",
]
