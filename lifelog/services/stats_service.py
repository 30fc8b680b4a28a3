# lifelog/services/stats_service.py
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from lifelog import models, schemas
from lifelog.core.constants import (
    PERIOD_DAYS,
    AchievementStatus,
    LeaderboardMetric,
    LeaderboardPeriod,
)
from lifelog.core.exceptions import AuthorizationException, ResourceNotFoundException
from lifelog.repositories.achievement_repository import (
    AchievementDefinitionRepository,
    ProgressRecordRepository,
)

logger = logging.getLogger(__name__)


def _status_counts(counts) -> schemas.StatusCounts:
    return schemas.StatusCounts(
        **{getattr(status, "value", status): count for status, count in counts.items()}
    )


class StatsService:
    """Read-only summaries computed from the ledger on demand."""

    def __init__(self, db: Session):
        self.db = db
        self.records = ProgressRecordRepository(db)
        self.definitions = AchievementDefinitionRepository(db)

    def get_user_stats(
        self, user_id: int, actor: Optional[models.User] = None, recent_limit: int = 5
    ) -> schemas.UserStats:
        """
        Summarize one user's progress.

        Points are the frozen `awarded_points` of achieved records, so later
        catalog edits never change a user's history.
        """
        if actor is not None and actor.id != user_id and not actor.is_admin:
            raise AuthorizationException("Cannot view another user's statistics")

        by_status = _status_counts(self.records.status_counts(user_id=user_id))
        total = (
            by_status.not_started + by_status.in_progress + by_status.achieved + by_status.expired
        )
        completion_rate = round(by_status.achieved / total * 100, 2) if total else 0.0

        by_category = {}
        for category, status, count, points in self.records.category_breakdown(user_id):
            key = getattr(category, "value", category)
            stats = by_category.setdefault(key, schemas.CategoryStats())
            stats.total += count
            if status == AchievementStatus.ACHIEVED:
                stats.achieved += count
                stats.points += int(points or 0)

        recent = [
            schemas.ProgressRecord.model_validate(record)
            for record in self.records.recent_achieved(user_id, limit=recent_limit)
        ]

        return schemas.UserStats(
            user_id=user_id,
            total=total,
            by_status=by_status,
            total_points=int(self.records.total_awarded_points(user_id) or 0),
            completion_rate=completion_rate,
            by_category=by_category,
            recent=recent,
        )

    def get_leaderboard(
        self,
        metric: LeaderboardMetric = LeaderboardMetric.TOTAL_POINTS,
        period: LeaderboardPeriod = LeaderboardPeriod.ALL_TIME,
        limit: int = 10,
        now: Optional[datetime] = None,
    ) -> schemas.Leaderboard:
        """Rank users by points or achievement count over a trailing period."""
        since = None
        if period != LeaderboardPeriod.ALL_TIME:
            since = (now or datetime.utcnow()) - timedelta(days=PERIOD_DAYS[period])

        rows = self.records.leaderboard(metric, since, limit)
        entries = [
            schemas.LeaderboardEntry(
                rank=rank,
                user_id=row.user_id,
                username=row.username,
                total_points=int(row.total_points or 0),
                achievement_count=row.achievement_count,
                last_achieved_at=row.last_achieved_at,
            )
            for rank, row in enumerate(rows, start=1)
        ]
        return schemas.Leaderboard(metric=metric, period=period, entries=entries)

    def get_definition_stats(self, definition_id: int) -> schemas.DefinitionStats:
        if not self.definitions.get(definition_id):
            raise ResourceNotFoundException(f"Achievement with ID {definition_id} not found")

        by_status = _status_counts(self.records.status_counts(definition_id=definition_id))
        return schemas.DefinitionStats(
            definition_id=definition_id,
            total=(
                by_status.not_started
                + by_status.in_progress
                + by_status.achieved
                + by_status.expired
            ),
            by_status=by_status,
            achieved_count=by_status.achieved,
            in_progress_count=by_status.in_progress,
        )
