# lifelog/services/catalog_service.py
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from lifelog import models, schemas
from lifelog.core.config import settings
from lifelog.core.constants import (
    MAX_DEFINITION_NAME_LENGTH,
    ROUTABLE_EVENTS,
    AchievementCategory,
    ConditionType,
    DefinitionStatus,
    Difficulty,
)
from lifelog.core.exceptions import (
    ConcurrentUpdateException,
    ConditionEvaluationException,
    DuplicateResourceException,
    ResourceNotFoundException,
    ValidationException,
)
from lifelog.core.security import require_admin
from lifelog.integrations.notifications import BaseNotifier
from lifelog.repositories.achievement_repository import (
    OPEN_STATUSES,
    AchievementDefinitionRepository,
    ProgressRecordRepository,
)
from lifelog.repositories.activity_repository import ActivityRepository
from lifelog.repositories.user_repository import UserRepository
from lifelog.services import condition_evaluator, progress_ledger
from lifelog.services.notification_service import NotificationService
from lifelog.services.transition_observers import default_observers, run_observers

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = ("condition_type", "condition_field", "condition_target")
BACKFILL_TRIGGER = "backfill"


def _enum_value(enum_cls, value: Any, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationException(
            f"Unknown {label} '{value}'",
            details={"allowed": [e.value for e in enum_cls]},
        )


def _validate_window(active_from: Optional[datetime], active_until: Optional[datetime]) -> None:
    if active_from and active_until and active_from >= active_until:
        raise ValidationException("active_from must be earlier than active_until")


class CatalogService:
    """Administrative create/update/retire/backfill of achievement definitions."""

    def __init__(self, db: Session, notifier: Optional[BaseNotifier] = None):
        self.db = db
        self.notifier = notifier
        self.definitions = AchievementDefinitionRepository(db)
        self.records = ProgressRecordRepository(db)
        self.users = UserRepository(db)

    def create_definition(
        self, actor: models.User, data: schemas.AchievementDefinitionCreate
    ) -> models.AchievementDefinition:
        """
        Publish a new definition after validating it completely.

        Raises:
            AuthorizationException: actor is not an admin
            ValidationException: malformed definition
            DuplicateResourceException: the name is taken
        """
        require_admin(actor, "create achievements")

        name = self._validate_name(data.name)
        if data.points <= 0:
            raise ValidationException("points must be a positive integer")
        if data.condition_target <= 0:
            raise ValidationException("condition_target must be a positive integer")

        condition_type = _enum_value(ConditionType, data.condition_type, "condition type")
        category = _enum_value(AchievementCategory, data.category, "category")
        difficulty = _enum_value(Difficulty, data.difficulty, "difficulty")
        if condition_type == ConditionType.MILESTONE and data.condition_target != 1:
            raise ValidationException("milestone conditions must have a target of 1")
        _validate_window(data.active_from, data.active_until)

        trigger_events = self._resolve_triggers(data.condition_field, data.trigger_events)
        try:
            condition_evaluator.validate_params(data.condition_field, data.condition_params)
        except ValueError as e:
            raise ValidationException(
                f"Invalid condition_params: {e}",
                details={"condition_params": data.condition_params},
            )
        if not condition_evaluator.supports(condition_type, data.condition_field):
            logger.warning(
                f"Definition '{name}' uses field '{data.condition_field}' "
                f"which has no {condition_type.value} evaluator"
            )

        definition = self.definitions.create(
            {
                "name": name,
                "description": data.description,
                "icon": data.icon,
                "category": category,
                "difficulty": difficulty,
                "points": data.points,
                "condition_type": condition_type,
                "condition_field": data.condition_field,
                "condition_target": data.condition_target,
                "condition_params": data.condition_params,
                "trigger_events": trigger_events,
                "active_from": data.active_from,
                "active_until": data.active_until,
                "is_repeatable": data.is_repeatable,
                "is_active": data.is_active,
                "is_hidden": data.is_hidden,
                "sort_order": data.sort_order,
                "status": DefinitionStatus.ACTIVE,
                "created_by_id": actor.id,
            }
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateResourceException(f"Achievement named '{name}' already exists")
        self.db.refresh(definition)

        logger.info(f"Admin {actor.id} created achievement '{name}' (id={definition.id})")
        return definition

    def update_definition(
        self,
        actor: models.User,
        definition_id: int,
        data: schemas.AchievementDefinitionUpdate,
    ) -> models.AchievementDefinition:
        """
        Edit descriptive fields. Frozen snapshots keep the values they captured.

        Raises:
            ValidationException: an attempt to change the condition, or bad values
        """
        require_admin(actor, "update achievements")
        definition = self._get_or_404(definition_id)
        changes: Dict[str, Any] = data.model_dump(exclude_unset=True)

        for field in IMMUTABLE_FIELDS:
            if field in changes and changes[field] is not None:
                current = getattr(definition, field)
                if changes[field] != getattr(current, "value", current):
                    raise ValidationException(
                        f"{field} cannot change once an achievement is published",
                        details={"field": field},
                    )
            changes.pop(field, None)

        if "name" in changes:
            changes["name"] = self._validate_name(changes["name"], exclude_id=definition.id)
        if "points" in changes and (changes["points"] is None or changes["points"] <= 0):
            raise ValidationException("points must be a positive integer")
        if "difficulty" in changes:
            changes["difficulty"] = _enum_value(Difficulty, changes["difficulty"], "difficulty")
        _validate_window(
            changes.get("active_from", definition.active_from),
            changes.get("active_until", definition.active_until),
        )

        definition = self.definitions.update(definition, changes)
        self.db.commit()
        self.db.refresh(definition)

        logger.info(f"Admin {actor.id} updated achievement {definition_id}: {sorted(changes)}")
        return definition

    def retire_definition(
        self, actor: models.User, definition_id: int, hard_delete: bool = False
    ) -> schemas.RetireResult:
        """
        Take a definition out of circulation.

        A soft retire keeps achieved records and expires the open ones; a hard
        delete removes the definition together with every record.
        """
        require_admin(actor, "retire achievements")
        definition = self._get_or_404(definition_id)

        if hard_delete:
            removed = len(definition.progress_records)
            self.records.delete_checkpoint(definition.id)
            self.definitions.delete(definition)
            self._commit(definition_id)
            logger.info(
                f"Admin {actor.id} deleted achievement {definition_id} and {removed} records"
            )
            return schemas.RetireResult(
                definition_id=definition_id, hard_deleted=True, expired_records=0
            )

        now = datetime.utcnow()
        open_records = self.records.list_by_definition(definition.id, OPEN_STATUSES)
        for record in open_records:
            progress_ledger.expire(record, now)
        definition.status = DefinitionStatus.RETIRED
        definition.is_active = False
        self._commit(definition_id)

        logger.info(
            f"Admin {actor.id} retired achievement {definition_id}, "
            f"expired {len(open_records)} records"
        )
        return schemas.RetireResult(
            definition_id=definition_id, hard_deleted=False, expired_records=len(open_records)
        )

    def backfill_definition(
        self, actor: models.User, definition_id: int, batch_size: Optional[int] = None
    ) -> schemas.BackfillResult:
        """
        Evaluate a definition for every user against their recorded activity.

        Users are visited in id order. Each batch is committed together with a
        checkpoint, so an interrupted run resumes after the last committed user.
        """
        require_admin(actor, "backfill achievements")
        definition = self._get_or_404(definition_id)
        if definition.status != DefinitionStatus.ACTIVE or not definition.is_active:
            raise ValidationException(f"Achievement {definition_id} is not active")
        if not condition_evaluator.supports(definition.condition_type, definition.condition_field):
            raise ConditionEvaluationException(
                f"Achievement {definition_id} has no evaluator for "
                f"'{definition.condition_field}'"
            )

        batch_size = batch_size or settings.ACHIEVEMENT_BACKFILL_BATCH_SIZE
        checkpoint = self.records.get_checkpoint(definition.id)
        if checkpoint is not None and checkpoint.completed_at is not None:
            # A finished run starts over
            self.records.delete_checkpoint(definition.id)
            self.db.commit()
            checkpoint = None
        last_user_id = checkpoint.last_user_id if checkpoint else 0
        if checkpoint:
            logger.info(f"Resuming backfill of {definition_id} after user {last_user_id}")

        newly_completed = 0
        while True:
            user_ids = self.users.list_ids_after(last_user_id, batch_size)
            if not user_ids:
                break
            achieved = self._backfill_batch(definition_id, user_ids)
            newly_completed += len(achieved)
            last_user_id = user_ids[-1]

            for record in achieved:
                NotificationService(self.db, self.notifier).dispatch(record)

        checkpoint = self.records.save_checkpoint(definition_id, last_user_id, 0, completed=True)
        self.db.commit()

        logger.info(
            f"Backfill of {definition_id} finished: {checkpoint.processed_count} users, "
            f"{newly_completed} newly achieved"
        )
        return schemas.BackfillResult(
            definition_id=definition_id,
            processed_count=checkpoint.processed_count,
            last_user_id=last_user_id,
            newly_completed=newly_completed,
            completed=True,
        )

    # --- helpers -------------------------------------------------------------

    def _backfill_batch(self, definition_id: int, user_ids: List[int]) -> List[models.ProgressRecord]:
        for attempt in (1, 2):
            try:
                return self._apply_batch(definition_id, user_ids)
            except StaleDataError:
                self.db.rollback()
                if attempt == 2:
                    raise ConcurrentUpdateException(
                        f"Backfill batch ending at user {user_ids[-1]} kept colliding",
                        details={"definition_id": definition_id},
                    )
                logger.info(f"Retrying backfill batch ending at user {user_ids[-1]}")
        return []

    def _apply_batch(self, definition_id: int, user_ids: List[int]) -> List[models.ProgressRecord]:
        definition = self.definitions.get(definition_id)
        spec = condition_evaluator.ConditionSpec.from_definition(definition)
        activity = ActivityRepository(self.db)
        observers = default_observers()
        now = datetime.utcnow()
        achieved = []

        for user_id in user_ids:
            record = self.records.get_user_record(user_id, definition_id)
            if record is None:
                record = self.records.create_record(user_id, definition)
            if record.status in progress_ledger.CLOSED_STATUSES:
                continue

            evaluation = condition_evaluator.evaluate(
                spec, activity.build_snapshot(user_id), prior=record.current
            )
            transition = progress_ledger.apply_progress(
                record, definition, evaluation.new_value, BACKFILL_TRIGGER, at=now
            )
            if transition == progress_ledger.Transition.ACHIEVED:
                run_observers(observers, self.db, record, definition, now)
                achieved.append(record)

        self.records.save_checkpoint(definition_id, user_ids[-1], len(user_ids))
        self.db.commit()
        return achieved

    def _validate_name(self, name: Optional[str], exclude_id: Optional[int] = None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationException("name must not be empty")
        if len(name) > MAX_DEFINITION_NAME_LENGTH:
            raise ValidationException(
                f"name must be at most {MAX_DEFINITION_NAME_LENGTH} characters"
            )
        existing = self.definitions.get_by_name(name)
        if existing and existing.id != exclude_id:
            raise DuplicateResourceException(f"Achievement named '{name}' already exists")
        return name

    @staticmethod
    def _resolve_triggers(field: str, requested: Optional[List[str]]) -> List[str]:
        if requested is None:
            triggers = condition_evaluator.default_triggers(field)
            if triggers is None:
                raise ValidationException(
                    f"trigger_events are required for field '{field}'",
                    details={"field": field},
                )
            return triggers

        allowed = {e.value for e in ROUTABLE_EVENTS}
        unknown = [t for t in requested if t not in allowed]
        if unknown or not requested:
            raise ValidationException(
                "trigger_events must be a non-empty list of known event types",
                details={"unknown": unknown, "allowed": sorted(allowed)},
            )
        return list(dict.fromkeys(requested))

    def _get_or_404(self, definition_id: int) -> models.AchievementDefinition:
        definition = self.definitions.get(definition_id)
        if not definition:
            raise ResourceNotFoundException(f"Achievement with ID {definition_id} not found")
        return definition

    def _commit(self, definition_id: int) -> None:
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConcurrentUpdateException(
                f"Records of achievement {definition_id} changed concurrently, try again"
            )
