# lifelog/services/user_service.py
from typing import Optional, Tuple
from sqlalchemy.orm import Session
import logging

from lifelog import models
from lifelog.repositories.user_repository import UserRepository
from lifelog.core.exceptions import PointCreditException, ResourceNotFoundException

logger = logging.getLogger(__name__)


def calculate_points_for_next_level(level: int) -> int:
    """
    Calculate points required to leave `level`.
    Uses a common RPG formula: 100 * (level^1.5)
    """
    return int(100 * (level**1.5))


def level_for_points(total_points: int) -> int:
    """Level reached with `total_points` when every level threshold is cumulative."""
    level = 1
    while total_points >= calculate_points_for_next_level(level):
        level += 1
    return level


class UserService:
    def __init__(self, db: Session):
        self.db = db
        self.repository = UserRepository(db)

    def get_user_by_id(self, user_id: int) -> Optional[models.User]:
        """Get user by ID."""
        return self.repository.get_by_id(user_id)

    def get_user_or_404(self, user_id: int) -> models.User:
        user = self.repository.get_by_id(user_id)
        if not user:
            raise ResourceNotFoundException(f"User with ID {user_id} not found")
        return user

    def credit_points(self, user_id: int, amount: int) -> Tuple[models.User, bool]:
        """
        Add achievement points to a user inside the caller's transaction.

        The increment happens in SQL so concurrent credits never lose an
        update. Returns (user, did_level_up).

        Raises:
            PointCreditException: the user row could not be updated
        """
        if amount < 0:
            raise PointCreditException(
                f"Refusing to credit negative points ({amount}) to user {user_id}"
            )

        touched = self.repository.increment_points(user_id, amount)
        if touched != 1:
            raise PointCreditException(
                f"Could not credit {amount} points to user {user_id}",
                details={"user_id": user_id, "amount": amount},
            )

        user = self.repository.get_by_id(user_id)
        # The SQL update bypassed the identity map
        self.db.refresh(user, attribute_names=["total_points"])
        logger.info(f"Credited {amount} points to user {user_id} (total {user.total_points})")

        did_level_up, _ = self.apply_level(user)
        return user, did_level_up

    def apply_level(self, user: models.User) -> Tuple[bool, int]:
        """
        Recompute the user's level from their point total.
        Returns (did_level_up, new_level)
        """
        new_level = level_for_points(user.total_points or 0)
        if new_level > (user.level or 1):
            self.repository.set_level(user, new_level)
            logger.info(f"User {user.id} leveled up to {new_level}")
            return True, new_level
        return False, user.level
