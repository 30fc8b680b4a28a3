import logging
from typing import Any, Dict, Optional

import requests

from lifelog.core.config import settings
from lifelog.integrations.notifications.base import BaseNotifier, NotificationDeliveryError

logger = logging.getLogger(__name__)


class WebhookNotifier(BaseNotifier):
    """
    Client that posts notifications to the delivery service's webhook.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.url = url or settings.NOTIFICATION_WEBHOOK_URL
        self.timeout = timeout if timeout is not None else settings.NOTIFICATION_TIMEOUT
        self.session = session or requests.Session()

    def notify(self, user_id: int, message: Dict[str, Any]) -> None:
        try:
            response = self.session.post(
                self.url,
                json={"user_id": user_id, **message},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.Timeout as e:
            raise NotificationDeliveryError(
                f"Notification webhook timed out after {self.timeout}s"
            ) from e
        except requests.RequestException as e:
            raise NotificationDeliveryError(f"Notification webhook failed: {e}") from e

        logger.debug(f"Delivered notification to user {user_id} via webhook")
