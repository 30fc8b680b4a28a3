# lifelog/services/transition_observers.py
"""
Ordered side effects of a record becoming achieved.

Observers run inside the record's unit of work, before commit, so that a
durable `achieved` status and the credited points are written together.
Notification is not an observer: it runs only after the commit succeeds.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from lifelog import models
from lifelog.core.exceptions import PointCreditException
from lifelog.repositories.user_repository import UserRepository
from lifelog.services import progress_ledger
from lifelog.services.user_service import UserService


class TransitionObserver(ABC):
    @abstractmethod
    def on_achieved(
        self,
        db: Session,
        record: models.ProgressRecord,
        definition: models.AchievementDefinition,
        at: datetime,
    ) -> None:
        pass


class SnapshotCapture(TransitionObserver):
    def on_achieved(self, db, record, definition, at):
        user = UserRepository(db).get_by_id(record.user_id)
        progress_ledger.freeze_snapshot(record, definition, user, at)


class PointCredit(TransitionObserver):
    """Credit the frozen reward. Any failure here is fatal to the caller."""

    def on_achieved(self, db, record, definition, at):
        amount = record.awarded_points or 0
        try:
            UserService(db).credit_points(record.user_id, amount)
        except StaleDataError:
            raise
        except SQLAlchemyError as e:
            raise PointCreditException(
                f"Could not credit {amount} points for record {record.id}",
                details={"record_id": record.id, "user_id": record.user_id},
            ) from e


def default_observers() -> List[TransitionObserver]:
    return [SnapshotCapture(), PointCredit()]


def run_observers(
    observers: List[TransitionObserver],
    db: Session,
    record: models.ProgressRecord,
    definition: models.AchievementDefinition,
    at: datetime,
) -> None:
    for observer in observers:
        observer.on_achieved(db, record, definition, at)
