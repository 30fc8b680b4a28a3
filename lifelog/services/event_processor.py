# lifelog/services/event_processor.py
"""
Fan a domain event out to every progress record it can move.

Each record is its own unit of work: evaluate, update the ledger, run the
transition observers, commit. A failure on one definition is reported in
the result and never rolls back the others, except for point crediting,
which aborts the event.
"""
import contextvars
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from lifelog import models
from lifelog.core.config import settings
from lifelog.core.constants import ROUTABLE_EVENTS, EventType
from lifelog.core.exceptions import (
    BusinessException,
    ConcurrentUpdateException,
    ConditionEvaluationException,
    PointCreditException,
    ProcessingException,
    ValidationException,
)
from lifelog.core.logging import log_context
from lifelog.integrations.notifications import BaseNotifier, get_notifier
from lifelog.repositories.achievement_repository import ProgressRecordRepository
from lifelog.repositories.activity_repository import ActivityRepository
from lifelog.schemas.achievement import (
    AchievementCheckResult,
    CompletedAchievement,
    FailedDefinition,
    naive_utc,
)
from lifelog.schemas.activity import ActivitySnapshot
from lifelog.services import condition_evaluator, progress_ledger
from lifelog.services.achievement_service import AchievementService
from lifelog.services.notification_service import NotificationService
from lifelog.services.transition_observers import (
    TransitionObserver,
    default_observers,
    run_observers,
)
from lifelog.services.user_service import UserService

logger = logging.getLogger(__name__)


# --- per-record outcomes -----------------------------------------------------


class RecordOutcome(NamedTuple):
    kind: str  # updated | completed | expired | skipped | failed
    definition_id: int
    completed: Optional[CompletedAchievement] = None
    failure: Optional[FailedDefinition] = None


def _failure(definition_id: int, exc: BusinessException) -> RecordOutcome:
    return RecordOutcome(
        "failed",
        definition_id,
        failure=FailedDefinition(
            definition_id=definition_id, error=exc.code, message=exc.message
        ),
    )


class EventProcessor:
    def __init__(
        self,
        db: Session,
        notifier: Optional[BaseNotifier] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        workers: Optional[int] = None,
        observers: Optional[List[TransitionObserver]] = None,
    ):
        self.db = db
        self.notifier = notifier or get_notifier()
        self.session_factory = session_factory
        self.workers = workers if workers is not None else settings.ACHIEVEMENT_WORKER_POOL_SIZE
        self.observers = observers if observers is not None else default_observers()

    def process(
        self,
        user_id: int,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
        occurred_at: Optional[datetime] = None,
    ) -> AchievementCheckResult:
        """
        Apply one domain event to all of a user's eligible progress records.

        `payload` may carry `related_entity_id` and `related_entity_type`;
        a repeated entity id for the same event type is applied only once.

        Raises:
            ValidationException: unknown or non-routable event type
            ResourceNotFoundException: unknown user
            PointCreditException: a completion could not be credited
        """
        event = self._validate_event_type(event_type)
        payload = payload or {}
        related_id = payload.get("related_entity_id")
        related_id = str(related_id) if related_id is not None else None
        related_type = payload.get("related_entity_type")
        at = naive_utc(occurred_at) or datetime.utcnow()

        with log_context(user_id=user_id, event_type=event.value):
            UserService(self.db).get_user_or_404(user_id)

            self.ensure_records(user_id)

            candidates = [
                (record.id, record.definition_id)
                for record in ProgressRecordRepository(self.db).get_open_records(user_id)
                if record.definition.accepts_event(event.value)
            ]
            snapshot = ActivityRepository(self.db).build_snapshot(user_id, event_at=at)

            logger.info(f"Processing {event.value} for user {user_id}: {len(candidates)} candidates")

            if self.workers > 1 and self.session_factory and len(candidates) > 1:
                outcomes = self._process_parallel(
                    candidates, event, related_id, related_type, at, snapshot
                )
            else:
                outcomes = [
                    self._process_record(
                        self.db, record_id, definition_id, event, related_id, related_type, at, snapshot
                    )
                    for record_id, definition_id in candidates
                ]

            result = self._collect(outcomes)
            if result.failed:
                logger.warning(
                    f"{len(result.failed)} definitions failed for user {user_id}",
                    extra={"failed": result.failed_ids},
                )
            return result

    def ensure_records(self, user_id: int) -> int:
        """Create not_started records for active definitions the user lacks."""
        return AchievementService(self.db, self.notifier).initialize_user(user_id)

    # --- internals -----------------------------------------------------------

    @staticmethod
    def _validate_event_type(event_type: str) -> EventType:
        try:
            event = EventType(event_type)
        except ValueError:
            raise ValidationException(
                f"Unknown event type '{event_type}'",
                details={"allowed": sorted(e.value for e in ROUTABLE_EVENTS)},
            )
        if event not in ROUTABLE_EVENTS:
            raise ValidationException(f"Event type '{event_type}' cannot be submitted")
        return event

    def _process_parallel(self, candidates, event, related_id, related_type, at, snapshot):
        def work(record_id, definition_id):
            db = self.session_factory()
            try:
                return self._process_record(
                    db, record_id, definition_id, event, related_id, related_type, at, snapshot
                )
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [
                # Each task needs its own copy to carry the logging context
                pool.submit(contextvars.copy_context().run, work, record_id, definition_id)
                for record_id, definition_id in candidates
            ]
            return [future.result() for future in futures]

    def _process_record(
        self,
        db: Session,
        record_id: int,
        definition_id: int,
        event: EventType,
        related_id: Optional[str],
        related_type: Optional[str],
        at: datetime,
        snapshot: ActivitySnapshot,
    ) -> RecordOutcome:
        for attempt in (1, 2):
            try:
                outcome = self._apply(
                    db, record_id, event, related_id, related_type, at, snapshot
                )
                break
            except StaleDataError:
                db.rollback()
                if attempt == 2:
                    logger.warning(f"Record {record_id} kept changing underneath, giving up")
                    return _failure(
                        definition_id,
                        ConcurrentUpdateException(
                            f"Progress record {record_id} was updated concurrently"
                        ),
                    )
                logger.info(f"Record {record_id} changed concurrently, retrying")
            except ConditionEvaluationException as e:
                db.rollback()
                logger.error(
                    f"Definition {definition_id} could not be evaluated: {e.message}",
                    extra={"definition_id": definition_id},
                )
                return _failure(definition_id, e)
            except PointCreditException:
                db.rollback()
                logger.error(f"Point credit failed for record {record_id}, rolled back")
                raise
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Could not save record {record_id}: {e}")
                return _failure(
                    definition_id,
                    ProcessingException(f"Progress record {record_id} could not be saved"),
                )

        if outcome.kind == "completed":
            record = db.get(models.ProgressRecord, record_id)
            NotificationService(db, self.notifier).dispatch(record)
        return outcome

    def _apply(self, db, record_id, event, related_id, related_type, at, snapshot) -> RecordOutcome:
        records = ProgressRecordRepository(db)
        record = records.get_with_definition(record_id)
        definition = record.definition

        if record.status in progress_ledger.CLOSED_STATUSES:
            return RecordOutcome("skipped", definition.id)
        if related_id and records.has_history_entry(record.id, event.value, related_id):
            logger.debug(f"Record {record.id} already saw {event.value}:{related_id}")
            return RecordOutcome("skipped", definition.id)

        if definition.window_closed(at):
            progress_ledger.expire(record, at)
            db.commit()
            return RecordOutcome("expired", definition.id)

        try:
            evaluation = condition_evaluator.evaluate(
                condition_evaluator.ConditionSpec.from_definition(definition),
                snapshot,
                prior=record.current,
            )
        except ConditionEvaluationException:
            raise
        except Exception as e:
            # Any evaluator error stays with this definition
            raise ConditionEvaluationException(
                f"Condition of definition {definition.id} failed: {e}",
                details={"field": definition.condition_field},
            ) from e
        transition = progress_ledger.apply_progress(
            record, definition, evaluation.new_value, event, related_id, related_type, at
        )

        completed = None
        if transition == progress_ledger.Transition.ACHIEVED:
            run_observers(self.observers, db, record, definition, at)
            completed = CompletedAchievement(
                record_id=record.id,
                definition_id=definition.id,
                name=definition.name,
                points=record.awarded_points or 0,
            )
            logger.info(f"User {record.user_id} achieved '{definition.name}'")

        db.commit()
        return RecordOutcome("completed" if completed else "updated", definition.id, completed)

    @staticmethod
    def _collect(outcomes: List[RecordOutcome]) -> AchievementCheckResult:
        result = AchievementCheckResult()
        for outcome in outcomes:
            if outcome.kind in ("updated", "completed"):
                result.updated_count += 1
            if outcome.kind == "completed":
                result.newly_completed.append(outcome.completed)
            elif outcome.kind == "failed":
                result.failed.append(outcome.failure)
            elif outcome.kind == "skipped":
                result.skipped += 1
            elif outcome.kind == "expired":
                result.expired += 1
        return result
