from abc import ABC, abstractmethod

from .models import NotificationEvent


class NotificationProviderInterface(ABC):
    """Interface for notification senders."""

    @abstractmethod
    async def notify(self, event: NotificationEvent) -> None:
        """
        Deliver a notification event.

        Callers treat delivery as best-effort; implementations raise on
        failure and leave swallowing to the caller.
        """
        pass
