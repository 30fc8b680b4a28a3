# lifelog/core/security.py
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from jose import jwt

from lifelog.core.config import settings
from lifelog.core.exceptions import AuthorizationException

ALGORITHM = settings.JWT_ALGORITHM


def create_access_token(
    subject: Union[str, Any], expires_delta: Optional[timedelta] = None
) -> str:
    """Issue a signed bearer token whose `sub` is the user id."""
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"exp": expire, "sub": str(subject)}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])


def require_admin(actor, action: str = "perform this action") -> None:
    """Raise AuthorizationException unless `actor` is an active administrator."""
    if actor is None or not actor.is_active or not actor.is_admin:
        raise AuthorizationException(f"Administrator rights are required to {action}")
