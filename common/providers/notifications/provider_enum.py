from enum import StrEnum


class NotificationProviderType(StrEnum):
    """Enumeration of supported notification sender types."""

    LOG = "log"
    HTTP = "http"
