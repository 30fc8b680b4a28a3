# lifelog/api/routes/events.py
from typing import Any
import logging

from fastapi import APIRouter, Depends

from lifelog import models, schemas
from lifelog.api import deps
from lifelog.core.logging import log_context
from lifelog.services.event_processor import EventProcessor

# Set up logger
logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=schemas.AchievementCheckResult)
def submit_event(
    *,
    event_in: schemas.AchievementEvent,
    current_user: models.User = Depends(deps.get_current_active_user),
    event_processor: EventProcessor = Depends(deps.get_event_processor()),
) -> Any:
    """
    Report a domain event for the current user and check their achievements.
    """
    with log_context(user_id=current_user.id, action="submit_event"):
        logger.info(f"User {current_user.id} submitted {event_in.event_type}")
        payload = dict(event_in.payload)
        payload.update(
            related_entity_id=event_in.related_entity_id,
            related_entity_type=event_in.related_entity_type,
        )
        return event_processor.process(
            current_user.id,
            event_in.event_type,
            payload,
            occurred_at=event_in.occurred_at,
        )
