# lifelog/repositories/achievement_repository.py
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, func
from sqlalchemy.orm import Session, joinedload

from lifelog import models
from lifelog.core.constants import AchievementStatus, DefinitionStatus, LeaderboardMetric
from lifelog.repositories.base_repository import BaseRepository

OPEN_STATUSES = (AchievementStatus.NOT_STARTED, AchievementStatus.IN_PROGRESS)

SORTABLE_RECORD_COLUMNS = {
    "achieved_at": models.ProgressRecord.achieved_at,
    "created_at": models.ProgressRecord.created_at,
    "current": models.ProgressRecord.current,
    "percentage": models.ProgressRecord.current * 100.0 / models.ProgressRecord.target,
    "updated_at": models.ProgressRecord.updated_at,
}


class AchievementDefinitionRepository(BaseRepository[models.AchievementDefinition]):
    """Repository for the achievement catalog."""

    def __init__(self, db: Session):
        super().__init__(models.AchievementDefinition, db)

    def get_by_name(self, name: str) -> Optional[models.AchievementDefinition]:
        return (
            self.db.query(models.AchievementDefinition)
            .filter(func.lower(models.AchievementDefinition.name) == name.strip().lower())
            .first()
        )

    def list_definitions(
        self, include_inactive: bool = False
    ) -> List[models.AchievementDefinition]:
        query = self.db.query(models.AchievementDefinition)
        if not include_inactive:
            query = query.filter(
                models.AchievementDefinition.is_active.is_(True),
                models.AchievementDefinition.status == DefinitionStatus.ACTIVE,
            )
        return query.order_by(
            models.AchievementDefinition.sort_order, models.AchievementDefinition.id
        ).all()

    def list_missing_for_user(self, user_id: int) -> List[models.AchievementDefinition]:
        """Active definitions the user has no progress record for yet."""
        existing = (
            self.db.query(models.ProgressRecord.definition_id)
            .filter(models.ProgressRecord.user_id == user_id)
        )
        return (
            self.db.query(models.AchievementDefinition)
            .filter(
                models.AchievementDefinition.is_active.is_(True),
                models.AchievementDefinition.status == DefinitionStatus.ACTIVE,
                models.AchievementDefinition.id.notin_(existing),
            )
            .all()
        )


class ProgressRecordRepository(BaseRepository[models.ProgressRecord]):
    """Repository for per-user progress records and their history."""

    def __init__(self, db: Session):
        super().__init__(models.ProgressRecord, db)

    def get_with_definition(self, record_id: int) -> Optional[models.ProgressRecord]:
        return (
            self.db.query(models.ProgressRecord)
            .options(joinedload(models.ProgressRecord.definition))
            .filter(models.ProgressRecord.id == record_id)
            .first()
        )

    def get_user_record(
        self, user_id: int, definition_id: int
    ) -> Optional[models.ProgressRecord]:
        return (
            self.db.query(models.ProgressRecord)
            .filter(
                models.ProgressRecord.user_id == user_id,
                models.ProgressRecord.definition_id == definition_id,
            )
            .first()
        )

    def create_record(
        self, user_id: int, definition: models.AchievementDefinition
    ) -> models.ProgressRecord:
        record = models.ProgressRecord(
            user_id=user_id,
            definition_id=definition.id,
            status=AchievementStatus.NOT_STARTED,
            current=0,
            target=definition.condition_target,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def get_open_records(self, user_id: int) -> List[models.ProgressRecord]:
        """Records that can still move: not achieved and not expired."""
        return (
            self.db.query(models.ProgressRecord)
            .options(joinedload(models.ProgressRecord.definition))
            .filter(
                models.ProgressRecord.user_id == user_id,
                models.ProgressRecord.status.in_(OPEN_STATUSES),
            )
            .order_by(models.ProgressRecord.id)
            .all()
        )

    def has_history_entry(
        self, record_id: int, trigger_event: str, related_entity_id: str
    ) -> bool:
        return (
            self.db.query(models.ProgressHistoryEntry.id)
            .filter(
                models.ProgressHistoryEntry.record_id == record_id,
                models.ProgressHistoryEntry.trigger_event == trigger_event,
                models.ProgressHistoryEntry.related_entity_id == related_entity_id,
            )
            .first()
            is not None
        )

    def list_user_records(
        self,
        user_id: int,
        *,
        status: Optional[AchievementStatus] = None,
        category: Optional[str] = None,
        difficulty: Optional[str] = None,
        include_hidden: bool = False,
        sort_by: str = "achieved_at",
        descending: bool = True,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[models.ProgressRecord], int]:
        """Filtered, paginated records for one user plus the unpaginated total."""
        query = (
            self.db.query(models.ProgressRecord)
            .join(models.ProgressRecord.definition)
            .options(joinedload(models.ProgressRecord.definition))
            .filter(models.ProgressRecord.user_id == user_id)
        )
        if status:
            query = query.filter(models.ProgressRecord.status == status)
        if category:
            query = query.filter(models.AchievementDefinition.category == category)
        if difficulty:
            query = query.filter(models.AchievementDefinition.difficulty == difficulty)
        if not include_hidden:
            # Hidden goals stay secret until earned
            query = query.filter(
                (models.AchievementDefinition.is_hidden.is_(False))
                | (models.ProgressRecord.status == AchievementStatus.ACHIEVED)
            )

        total = query.count()

        column = SORTABLE_RECORD_COLUMNS.get(sort_by, models.ProgressRecord.achieved_at)
        ordering = column.desc() if descending else column.asc()
        records = (
            query.order_by(ordering, models.ProgressRecord.id)
            .offset(skip)
            .limit(limit)
            .all()
        )
        return records, total

    def list_by_definition(
        self, definition_id: int, statuses: Optional[Sequence[AchievementStatus]] = None
    ) -> List[models.ProgressRecord]:
        query = self.db.query(models.ProgressRecord).filter(
            models.ProgressRecord.definition_id == definition_id
        )
        if statuses:
            query = query.filter(models.ProgressRecord.status.in_(statuses))
        return query.all()

    def list_expirable(self, now: datetime, limit: int = 500) -> List[models.ProgressRecord]:
        """Open records whose definition window closed before `now`."""
        return (
            self.db.query(models.ProgressRecord)
            .join(models.ProgressRecord.definition)
            .options(joinedload(models.ProgressRecord.definition))
            .filter(
                models.ProgressRecord.status.in_(OPEN_STATUSES),
                models.AchievementDefinition.active_until.isnot(None),
                models.AchievementDefinition.active_until < now,
            )
            .limit(limit)
            .all()
        )

    def list_unnotified(self, limit: int = 100) -> List[models.ProgressRecord]:
        return (
            self.db.query(models.ProgressRecord)
            .options(joinedload(models.ProgressRecord.definition))
            .filter(
                models.ProgressRecord.status == AchievementStatus.ACHIEVED,
                models.ProgressRecord.notified.is_(False),
            )
            .order_by(models.ProgressRecord.achieved_at)
            .limit(limit)
            .all()
        )

    def recent_achieved(self, user_id: int, limit: int = 5) -> List[models.ProgressRecord]:
        return (
            self.db.query(models.ProgressRecord)
            .options(joinedload(models.ProgressRecord.definition))
            .filter(
                models.ProgressRecord.user_id == user_id,
                models.ProgressRecord.status == AchievementStatus.ACHIEVED,
            )
            .order_by(models.ProgressRecord.achieved_at.desc())
            .limit(limit)
            .all()
        )

    # --- aggregates ----------------------------------------------------------

    def status_counts(
        self, *, user_id: Optional[int] = None, definition_id: Optional[int] = None
    ) -> Dict[AchievementStatus, int]:
        query = self.db.query(
            models.ProgressRecord.status, func.count(models.ProgressRecord.id)
        )
        if user_id is not None:
            query = query.filter(models.ProgressRecord.user_id == user_id)
        if definition_id is not None:
            query = query.filter(models.ProgressRecord.definition_id == definition_id)
        return {status: count for status, count in query.group_by(models.ProgressRecord.status)}

    def category_breakdown(self, user_id: int) -> List[Tuple[str, AchievementStatus, int, int]]:
        """(category, status, record count, awarded points) rows for one user."""
        return (
            self.db.query(
                models.AchievementDefinition.category,
                models.ProgressRecord.status,
                func.count(models.ProgressRecord.id),
                func.coalesce(func.sum(models.ProgressRecord.awarded_points), 0),
            )
            .join(models.ProgressRecord.definition)
            .filter(models.ProgressRecord.user_id == user_id)
            .group_by(models.AchievementDefinition.category, models.ProgressRecord.status)
            .all()
        )

    def total_awarded_points(self, user_id: int) -> int:
        return (
            self.db.query(func.coalesce(func.sum(models.ProgressRecord.awarded_points), 0))
            .filter(
                models.ProgressRecord.user_id == user_id,
                models.ProgressRecord.status == AchievementStatus.ACHIEVED,
            )
            .scalar()
        )

    def leaderboard(
        self, metric: LeaderboardMetric, since: Optional[datetime], limit: int
    ) -> list:
        """Per-user totals over achieved records, ranked by `metric`."""
        total_points = func.coalesce(func.sum(models.ProgressRecord.awarded_points), 0).label(
            "total_points"
        )
        achievement_count = func.count(models.ProgressRecord.id).label("achievement_count")
        last_achieved_at = func.max(models.ProgressRecord.achieved_at).label("last_achieved_at")

        conditions = [models.ProgressRecord.status == AchievementStatus.ACHIEVED]
        if since is not None:
            conditions.append(models.ProgressRecord.achieved_at >= since)

        query = (
            self.db.query(
                models.User.id.label("user_id"),
                models.User.username,
                total_points,
                achievement_count,
                last_achieved_at,
            )
            .join(models.ProgressRecord, models.ProgressRecord.user_id == models.User.id)
            .filter(and_(*conditions))
            .group_by(models.User.id, models.User.username)
        )

        if metric == LeaderboardMetric.TOTAL_POINTS:
            primary, secondary = total_points, achievement_count
        else:
            primary, secondary = achievement_count, total_points
        # Remaining ties go to whoever reached the score first
        return (
            query.order_by(
                primary.desc(), secondary.desc(), last_achieved_at.asc(), models.User.id.asc()
            )
            .limit(limit)
            .all()
        )

    # --- backfill checkpoints -------------------------------------------------

    def get_checkpoint(self, definition_id: int) -> Optional[models.BackfillCheckpoint]:
        return self.db.get(models.BackfillCheckpoint, definition_id)

    def save_checkpoint(
        self, definition_id: int, last_user_id: int, processed: int, completed: bool = False
    ) -> models.BackfillCheckpoint:
        checkpoint = self.get_checkpoint(definition_id)
        if checkpoint is None:
            checkpoint = models.BackfillCheckpoint(
                definition_id=definition_id, last_user_id=0, processed_count=0
            )
        checkpoint.last_user_id = last_user_id
        checkpoint.processed_count = (checkpoint.processed_count or 0) + processed
        checkpoint.completed_at = datetime.utcnow() if completed else None
        self.db.add(checkpoint)
        self.db.flush()
        return checkpoint

    def delete_checkpoint(self, definition_id: int) -> None:
        self.db.query(models.BackfillCheckpoint).filter(
            models.BackfillCheckpoint.definition_id == definition_id
        ).delete(synchronize_session=False)
