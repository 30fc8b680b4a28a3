# lifelog/api/routes/achievements.py
from typing import Any, List, Optional
import logging

from fastapi import APIRouter, Depends, Query

from lifelog import models, schemas
from lifelog.api import deps
from lifelog.core.constants import (
    AchievementCategory,
    AchievementStatus,
    Difficulty,
    LeaderboardMetric,
    LeaderboardPeriod,
)
from lifelog.core.logging import log_context
from lifelog.services.achievement_service import AchievementService
from lifelog.services.stats_service import StatsService

# Set up logger
logger = logging.getLogger(__name__)

router = APIRouter()


def _filters(
    status: Optional[AchievementStatus] = Query(None),
    category: Optional[AchievementCategory] = Query(None),
    difficulty: Optional[Difficulty] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = Query("achieved_at", pattern="^(achieved_at|percentage|created_at)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
) -> schemas.AchievementFilters:
    return schemas.AchievementFilters(
        status=status,
        category=category,
        difficulty=difficulty,
        skip=skip,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


def _record_page(records, total, filters: schemas.AchievementFilters) -> schemas.ProgressRecordList:
    return schemas.ProgressRecordList(
        items=[schemas.ProgressRecord.model_validate(r) for r in records],
        total=total,
        skip=filters.skip,
        limit=filters.limit,
    )


@router.get("/", response_model=schemas.ProgressRecordList)
def read_my_achievements(
    filters: schemas.AchievementFilters = Depends(_filters),
    current_user: models.User = Depends(deps.get_current_active_user),
    achievement_service: AchievementService = Depends(deps.get_achievement_service()),
) -> Any:
    """
    Retrieve the current user's progress records.
    """
    with log_context(user_id=current_user.id, action="list_achievements"):
        records, total = achievement_service.get_user_achievements(
            current_user, current_user.id, filters
        )
        return _record_page(records, total, filters)


@router.get("/definitions", response_model=List[schemas.AchievementDefinition])
def read_definitions(
    include_inactive: bool = False,
    current_user: models.User = Depends(deps.get_current_active_user),
    achievement_service: AchievementService = Depends(deps.get_achievement_service()),
) -> Any:
    """
    Retrieve the achievement catalog. Hidden goals are left out for non-admins.
    """
    definitions = achievement_service.list_definitions(
        include_inactive=include_inactive and current_user.is_admin
    )
    if not current_user.is_admin:
        definitions = [d for d in definitions if not d.is_hidden]
    return definitions


@router.get("/stats", response_model=schemas.UserStats)
def read_my_stats(
    current_user: models.User = Depends(deps.get_current_active_user),
    stats_service: StatsService = Depends(deps.get_stats_service()),
) -> Any:
    """
    Summary of the current user's achievements.
    """
    return stats_service.get_user_stats(current_user.id, actor=current_user)


@router.get("/leaderboard", response_model=schemas.Leaderboard)
def read_leaderboard(
    metric: LeaderboardMetric = LeaderboardMetric.TOTAL_POINTS,
    period: LeaderboardPeriod = LeaderboardPeriod.ALL_TIME,
    limit: int = Query(10, ge=1, le=100),
    current_user: models.User = Depends(deps.get_current_active_user),
    stats_service: StatsService = Depends(deps.get_stats_service()),
) -> Any:
    """
    Rank users by points or achievement count.
    """
    return stats_service.get_leaderboard(metric=metric, period=period, limit=limit)


@router.post("/initialize")
def initialize_my_achievements(
    current_user: models.User = Depends(deps.get_current_active_user),
    achievement_service: AchievementService = Depends(deps.get_achievement_service()),
) -> Any:
    """
    Create progress records for every active achievement the user lacks.
    """
    with log_context(user_id=current_user.id, action="initialize_achievements"):
        created = achievement_service.initialize_user(current_user.id)
        return {"created": created}


@router.get("/users/{user_id}", response_model=schemas.ProgressRecordList)
def read_user_achievements(
    user_id: int,
    filters: schemas.AchievementFilters = Depends(_filters),
    current_user: models.User = Depends(deps.get_current_active_user),
    achievement_service: AchievementService = Depends(deps.get_achievement_service()),
) -> Any:
    """
    Retrieve another user's progress records (admin only).
    """
    with log_context(user_id=current_user.id, action="list_user_achievements", target=user_id):
        records, total = achievement_service.get_user_achievements(current_user, user_id, filters)
        return _record_page(records, total, filters)


@router.get("/users/{user_id}/stats", response_model=schemas.UserStats)
def read_user_stats(
    user_id: int,
    current_user: models.User = Depends(deps.get_current_active_user),
    stats_service: StatsService = Depends(deps.get_stats_service()),
) -> Any:
    return stats_service.get_user_stats(user_id, actor=current_user)


@router.get("/{record_id}", response_model=schemas.ProgressRecordDetail)
def read_achievement(
    record_id: int,
    current_user: models.User = Depends(deps.get_current_active_user),
    achievement_service: AchievementService = Depends(deps.get_achievement_service()),
) -> Any:
    """
    Get one progress record with its history and estimated completion.
    """
    return achievement_service.get_record(current_user, record_id)
