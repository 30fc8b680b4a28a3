# lifelog/repositories/user_repository.py
from typing import List, Optional

from sqlalchemy.orm import Session

from lifelog import models


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> Optional[models.User]:
        """Get user by ID."""
        return self.db.query(models.User).filter(models.User.id == user_id).first()

    def list_ids_after(self, last_user_id: int, limit: int) -> List[int]:
        """Page through user ids in ascending order, for resumable batch jobs."""
        rows = (
            self.db.query(models.User.id)
            .filter(models.User.id > last_user_id)
            .order_by(models.User.id)
            .limit(limit)
            .all()
        )
        return [row.id for row in rows]

    def increment_points(self, user_id: int, amount: int) -> int:
        """
        Atomically add points at the database level.

        Returns the number of rows touched (0 when the user does not exist).
        """
        return (
            self.db.query(models.User)
            .filter(models.User.id == user_id)
            .update(
                {models.User.total_points: models.User.total_points + amount},
                synchronize_session=False,
            )
        )

    def set_level(self, user: models.User, level: int) -> models.User:
        user.level = level
        self.db.add(user)
        self.db.flush()
        return user
