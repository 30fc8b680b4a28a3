from lifelog.core.config import settings
from lifelog.integrations.notifications.base import (
    BaseNotifier,
    LoggingNotifier,
    NotificationDeliveryError,
)
from lifelog.integrations.notifications.webhook import WebhookNotifier


def get_notifier() -> BaseNotifier:
    """
    Provides the configured notifier for dependency injection.
    """
    if settings.NOTIFICATION_WEBHOOK_URL:
        return WebhookNotifier()
    return LoggingNotifier()
