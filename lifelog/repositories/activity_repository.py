# lifelog/repositories/activity_repository.py
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from lifelog import models
from lifelog.schemas.activity import (
    ActivitySnapshot,
    InteractionFact,
    MomentFact,
    ProfileFact,
    VisitFact,
)


class ActivityRepository:
    """Read-only access to the activity facts the achievement engine counts."""

    def __init__(self, db: Session):
        self.db = db

    def build_snapshot(
        self, user_id: int, event_at: Optional[datetime] = None
    ) -> ActivitySnapshot:
        """Collect a user's activity facts into one immutable snapshot."""
        user = self.db.get(models.User, user_id)

        moments = (
            self.db.query(models.Moment)
            .filter(models.Moment.user_id == user_id)
            .order_by(models.Moment.created_at)
            .all()
        )
        visits = (
            self.db.query(models.LocationVisit)
            .filter(models.LocationVisit.user_id == user_id)
            .all()
        )
        interactions = (
            self.db.query(models.SocialInteraction)
            .filter(models.SocialInteraction.user_id == user_id)
            .all()
        )
        profiles = (
            self.db.query(models.Profile).filter(models.Profile.owner_id == user_id).all()
        )

        return ActivitySnapshot(
            user_id=user_id,
            event_at=event_at,
            account_created_at=user.created_at if user else None,
            moments=[MomentFact.model_validate(m) for m in moments],
            visits=[VisitFact.model_validate(v) for v in visits],
            interactions=[InteractionFact.model_validate(i) for i in interactions],
            profiles=[ProfileFact.model_validate(p) for p in profiles],
        )
