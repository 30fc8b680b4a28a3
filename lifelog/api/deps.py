# lifelog/api/deps.py
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import ValidationError

from lifelog.core.config import settings
from lifelog.core.security import decode_access_token
from lifelog.models.user import User
from lifelog.schemas.token import TokenPayload
from lifelog.services.achievement_service import AchievementService
from lifelog.services.catalog_service import CatalogService
from lifelog.services.event_processor import EventProcessor
from lifelog.services.stats_service import StatsService
from lifelog.services.user_service import UserService
from lifelog.utils.dependencies import get_service

# OAuth2 password bearer scheme for token extraction
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/login/access-token"
)


# Service dependencies - defined as functions that will be called at runtime
# These will only be evaluated after services have been registered
def get_user_service():
    return get_service(UserService)


def get_achievement_service():
    return get_service(AchievementService)


def get_catalog_service():
    return get_service(CatalogService)


def get_stats_service():
    return get_service(StatsService)


def get_event_processor():
    return get_service(EventProcessor)


# Authentication dependencies
async def get_current_user(
    token: str = Depends(oauth2_scheme),
    user_service: UserService = Depends(get_user_service()),
) -> User:
    """
    Get the current authenticated user.

    Args:
        token: JWT token from the request
        user_service: Injected user service

    Returns:
        Authenticated user object

    Raises:
        HTTPException: If authentication fails
    """
    try:
        # Verify the token and extract the subject (user id)
        token_data = TokenPayload(**decode_access_token(token))
    except (JWTError, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )

    user = user_service.get_user_by_id(token_data.sub) if token_data.sub else None

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
        )

    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """
    Get the current authenticated and active user.

    Raises:
        HTTPException: If the user is inactive
    """
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user"
        )
    return current_user


async def get_current_admin_user(
    current_user: User = Depends(get_current_active_user),
) -> User:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator rights required",
        )
    return current_user
