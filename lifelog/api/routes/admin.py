# lifelog/api/routes/admin.py
from typing import Any, Optional
import logging

from fastapi import APIRouter, Depends, Query

from lifelog import models, schemas
from lifelog.api import deps
from lifelog.core.logging import log_context
from lifelog.services.achievement_service import AchievementService
from lifelog.services.catalog_service import CatalogService
from lifelog.services.stats_service import StatsService

# Set up logger
logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/achievements", response_model=schemas.AchievementDefinition, status_code=201)
def create_definition(
    *,
    definition_in: schemas.AchievementDefinitionCreate,
    current_user: models.User = Depends(deps.get_current_admin_user),
    catalog_service: CatalogService = Depends(deps.get_catalog_service()),
) -> Any:
    """
    Publish a new achievement.
    """
    with log_context(user_id=current_user.id, action="create_definition"):
        return catalog_service.create_definition(current_user, definition_in)


@router.patch("/achievements/{definition_id}", response_model=schemas.AchievementDefinition)
def update_definition(
    *,
    definition_id: int,
    definition_in: schemas.AchievementDefinitionUpdate,
    current_user: models.User = Depends(deps.get_current_admin_user),
    catalog_service: CatalogService = Depends(deps.get_catalog_service()),
) -> Any:
    """
    Edit an achievement's descriptive fields.
    """
    with log_context(user_id=current_user.id, action="update_definition", definition_id=definition_id):
        return catalog_service.update_definition(current_user, definition_id, definition_in)


@router.delete("/achievements/{definition_id}", response_model=schemas.RetireResult)
def retire_definition(
    *,
    definition_id: int,
    hard_delete: bool = Query(False),
    current_user: models.User = Depends(deps.get_current_admin_user),
    catalog_service: CatalogService = Depends(deps.get_catalog_service()),
) -> Any:
    """
    Retire an achievement, or delete it with all its progress records.
    """
    with log_context(user_id=current_user.id, action="retire_definition", definition_id=definition_id):
        return catalog_service.retire_definition(current_user, definition_id, hard_delete)


@router.post("/achievements/{definition_id}/backfill", response_model=schemas.BackfillResult)
def backfill_definition(
    *,
    definition_id: int,
    batch_size: Optional[int] = Query(None, ge=1, le=5000),
    current_user: models.User = Depends(deps.get_current_admin_user),
    catalog_service: CatalogService = Depends(deps.get_catalog_service()),
) -> Any:
    """
    Evaluate an achievement for every existing user.
    """
    with log_context(user_id=current_user.id, action="backfill", definition_id=definition_id):
        return catalog_service.backfill_definition(current_user, definition_id, batch_size)


@router.get("/achievements/{definition_id}/stats", response_model=schemas.DefinitionStats)
def read_definition_stats(
    definition_id: int,
    current_user: models.User = Depends(deps.get_current_admin_user),
    stats_service: StatsService = Depends(deps.get_stats_service()),
) -> Any:
    return stats_service.get_definition_stats(definition_id)


@router.post("/progress/grant", response_model=schemas.ProgressRecord)
def grant_achievement(
    *,
    grant_in: schemas.GrantRequest,
    current_user: models.User = Depends(deps.get_current_admin_user),
    achievement_service: AchievementService = Depends(deps.get_achievement_service()),
) -> Any:
    """
    Award an achievement manually.
    """
    with log_context(user_id=current_user.id, action="grant", target=grant_in.user_id):
        return achievement_service.grant(
            current_user, grant_in.user_id, grant_in.definition_id, grant_in.reason
        )


@router.put("/progress/{record_id}", response_model=schemas.ProgressRecord)
def set_progress(
    *,
    record_id: int,
    progress_in: schemas.SetProgressRequest,
    current_user: models.User = Depends(deps.get_current_admin_user),
    achievement_service: AchievementService = Depends(deps.get_achievement_service()),
) -> Any:
    """
    Overwrite a record's progress value.
    """
    with log_context(user_id=current_user.id, action="set_progress", record_id=record_id):
        return achievement_service.set_progress(current_user, record_id, progress_in.current)


@router.post("/progress/{record_id}/reset", response_model=schemas.ProgressRecord)
def reset_progress(
    *,
    record_id: int,
    current_user: models.User = Depends(deps.get_current_admin_user),
    achievement_service: AchievementService = Depends(deps.get_achievement_service()),
) -> Any:
    """
    Reopen a repeatable achieved record, or an expired one.
    """
    with log_context(user_id=current_user.id, action="reset", record_id=record_id):
        return achievement_service.reset(current_user, record_id)
