# lifelog/services/achievement_service.py
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from lifelog import models, schemas
from lifelog.core.constants import EventType
from lifelog.core.exceptions import (
    AuthorizationException,
    ConcurrentUpdateException,
    ResourceNotFoundException,
)
from lifelog.core.security import require_admin
from lifelog.integrations.notifications import BaseNotifier
from lifelog.repositories.achievement_repository import (
    AchievementDefinitionRepository,
    ProgressRecordRepository,
)
from lifelog.repositories.user_repository import UserRepository
from lifelog.services import progress_ledger
from lifelog.services.notification_service import NotificationService
from lifelog.services.transition_observers import default_observers, run_observers

logger = logging.getLogger(__name__)


class AchievementService:
    """Read side of the progress ledger plus administrative progress edits."""

    def __init__(self, db: Session, notifier: Optional[BaseNotifier] = None):
        self.db = db
        self.notifier = notifier
        self.definitions = AchievementDefinitionRepository(db)
        self.records = ProgressRecordRepository(db)
        self.users = UserRepository(db)

    # --- catalog reads -------------------------------------------------------

    def list_definitions(
        self, include_inactive: bool = False
    ) -> List[models.AchievementDefinition]:
        return self.definitions.list_definitions(include_inactive=include_inactive)

    def get_definition(self, definition_id: int) -> models.AchievementDefinition:
        definition = self.definitions.get(definition_id)
        if not definition:
            raise ResourceNotFoundException(f"Achievement with ID {definition_id} not found")
        return definition

    # --- user progress -------------------------------------------------------

    def initialize_user(self, user_id: int) -> int:
        """Create not_started records for active definitions the user lacks."""
        if not self.users.get_by_id(user_id):
            raise ResourceNotFoundException(f"User with ID {user_id} not found")

        missing = self.definitions.list_missing_for_user(user_id)
        if not missing:
            return 0

        for definition in missing:
            self.records.create_record(user_id, definition)
        try:
            self.db.commit()
        except IntegrityError:
            # Another request created them first
            self.db.rollback()
            logger.info(f"Progress records for user {user_id} were created concurrently")
            return 0

        logger.info(f"Initialized {len(missing)} progress records for user {user_id}")
        return len(missing)

    def get_user_achievements(
        self,
        actor: models.User,
        user_id: int,
        filters: Optional[schemas.AchievementFilters] = None,
    ) -> Tuple[List[models.ProgressRecord], int]:
        """
        List a user's progress records with filtering, sorting and pagination.

        Hidden definitions are listed only once achieved, except to admins.

        Raises:
            AuthorizationException: a non-admin asked for another user's records
        """
        self._check_access(actor, user_id)
        filters = filters or schemas.AchievementFilters()

        return self.records.list_user_records(
            user_id,
            status=filters.status,
            category=filters.category,
            difficulty=filters.difficulty,
            include_hidden=actor.is_admin,
            sort_by=filters.sort_by,
            descending=filters.sort_order == "desc",
            skip=filters.skip,
            limit=filters.limit,
        )

    def get_record(self, actor: models.User, record_id: int) -> models.ProgressRecord:
        record = self.records.get_with_definition(record_id)
        if not record:
            raise ResourceNotFoundException(f"Progress record with ID {record_id} not found")
        self._check_access(actor, record.user_id)
        return record

    # --- administrative operations -------------------------------------------

    def grant(
        self,
        actor: models.User,
        user_id: int,
        definition_id: int,
        reason: Optional[str] = None,
    ) -> models.ProgressRecord:
        """Manually award an achievement, crediting its points once."""
        require_admin(actor, "grant achievements")
        definition = self.get_definition(definition_id)
        if not self.users.get_by_id(user_id):
            raise ResourceNotFoundException(f"User with ID {user_id} not found")

        record = self.records.get_user_record(user_id, definition_id)
        if record is None:
            record = self.records.create_record(user_id, definition)

        now = datetime.utcnow()
        progress_ledger.grant(record, actor.id, reason, now)
        run_observers(default_observers(), self.db, record, definition, now)
        self._commit(record)

        logger.info(
            f"Admin {actor.id} granted '{definition.name}' to user {user_id}",
            extra={"reason": reason},
        )
        self._notify(record)
        return record

    def set_progress(
        self, actor: models.User, record_id: int, value: int
    ) -> models.ProgressRecord:
        """Overwrite a record's progress value; reaching the target achieves it."""
        require_admin(actor, "edit progress")
        record = self.records.get_with_definition(record_id)
        if not record:
            raise ResourceNotFoundException(f"Progress record with ID {record_id} not found")

        now = datetime.utcnow()
        transition = progress_ledger.apply_progress(
            record, record.definition, value, EventType.MANUAL, actor.id, "User", now
        )
        if transition == progress_ledger.Transition.ACHIEVED:
            run_observers(default_observers(), self.db, record, record.definition, now)
        self._commit(record)

        logger.info(f"Admin {actor.id} set record {record_id} to {value} ({transition.value})")
        if transition == progress_ledger.Transition.ACHIEVED:
            self._notify(record)
        return record

    def reset(self, actor: models.User, record_id: int) -> models.ProgressRecord:
        """Reopen an achieved repeatable record, or an expired one, for another cycle."""
        require_admin(actor, "reset progress")
        record = self.records.get_with_definition(record_id)
        if not record:
            raise ResourceNotFoundException(f"Progress record with ID {record_id} not found")

        progress_ledger.reset(record, record.definition)
        self._commit(record)
        logger.info(f"Admin {actor.id} reset record {record_id}")
        return record

    def expire_overdue(self, now: Optional[datetime] = None, limit: int = 500) -> int:
        """Expire open records whose definition window has closed. Returns expired count."""
        now = now or datetime.utcnow()
        overdue = self.records.list_expirable(now, limit=limit)
        for record in overdue:
            progress_ledger.expire(record, now)

        if not overdue:
            return 0
        try:
            self.db.commit()
        except StaleDataError:
            # Picked up again on the next sweep
            self.db.rollback()
            logger.warning("Expiry sweep collided with concurrent updates")
            return 0

        logger.info(f"Expired {len(overdue)} progress records")
        return len(overdue)

    # --- helpers -------------------------------------------------------------

    @staticmethod
    def _check_access(actor: models.User, user_id: int) -> None:
        if actor.id != user_id and not actor.is_admin:
            raise AuthorizationException("Cannot access another user's achievements")

    def _commit(self, record: models.ProgressRecord) -> None:
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConcurrentUpdateException(
                f"Progress record {record.id} was modified concurrently, try again",
                details={"record_id": record.id},
            )
        self.db.refresh(record)

    def _notify(self, record: models.ProgressRecord) -> None:
        NotificationService(self.db, self.notifier).dispatch(record)
