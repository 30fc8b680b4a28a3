# lifelog/services/notification_service.py
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from lifelog import models
from lifelog.integrations.notifications import (
    BaseNotifier,
    NotificationDeliveryError,
    get_notifier,
)
from lifelog.repositories.achievement_repository import ProgressRecordRepository

logger = logging.getLogger(__name__)


def build_message(record: models.ProgressRecord) -> Dict[str, Any]:
    """Render the notification for an achieved record from its frozen snapshot."""
    snapshot = record.snapshot or {}
    name = snapshot.get("name") or record.definition.name
    points = snapshot.get("points", record.awarded_points or 0)
    return {
        "type": "achievement",
        "title": f"Achievement unlocked: {name}",
        "body": snapshot.get("description") or record.definition.description or "",
        "achievement_id": record.definition_id,
        "points": points,
    }


class NotificationService:
    """Hands achieved records to the notifier and marks them delivered."""

    def __init__(self, db: Session, notifier: Optional[BaseNotifier] = None):
        self.db = db
        self.notifier = notifier or get_notifier()
        self.records = ProgressRecordRepository(db)

    def dispatch(self, record: models.ProgressRecord) -> bool:
        """
        Notify the owner of one achieved record.

        Runs after the achievement is committed. A delivery failure leaves
        `notified` false so the maintenance sweep can retry it.
        """
        if record.notified:
            return True

        try:
            self.notifier.notify(record.user_id, build_message(record))
        except NotificationDeliveryError as e:
            logger.warning(
                f"Notification for record {record.id} failed: {e}",
                extra={"record_id": record.id, "user_id": record.user_id},
            )
            return False
        except Exception:
            logger.exception(
                f"Notifier raised unexpectedly for record {record.id}",
                extra={"record_id": record.id, "user_id": record.user_id},
            )
            return False

        record.notified = True
        record.notified_at = datetime.utcnow()
        try:
            self.db.commit()
        except StaleDataError:
            # The record moved on concurrently; the next sweep will see it
            self.db.rollback()
            logger.warning(f"Record {record.id} changed while marking it notified")
            return False
        return True

    def retry_pending(self, limit: int = 100) -> int:
        """Re-send notifications for achieved records never delivered. Returns sent count."""
        sent = 0
        for record in self.records.list_unnotified(limit=limit):
            if self.dispatch(record):
                sent += 1
        if sent:
            logger.info(f"Delivered {sent} pending achievement notifications")
        return sent
