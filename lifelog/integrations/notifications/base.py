import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    """Raised by a notifier when a message could not be handed off."""


class BaseNotifier(ABC):
    """
    Abstract base class for outbound achievement notifications.

    Implementations must return promptly: the engine calls them after a
    transition has been committed and treats any failure as retryable.
    """

    @abstractmethod
    def notify(self, user_id: int, message: Dict[str, Any]) -> None:
        """
        Deliver one message to a user.

        Args:
            user_id: Recipient user id
            message: {"type", "title", "body", "achievement_id", "points"}

        Raises:
            NotificationDeliveryError: If the message was not accepted
        """
        pass


class LoggingNotifier(BaseNotifier):
    """Notifier used when no delivery channel is configured."""

    def notify(self, user_id: int, message: Dict[str, Any]) -> None:
        logger.info(f"Notification for user {user_id}: {message.get('title')}")
