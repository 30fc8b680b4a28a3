# lifelog/api/api.py
from fastapi import APIRouter

from lifelog.api.routes import (
    achievements,
    admin,
    events,
)

api_router = APIRouter()
api_router.include_router(events.router, prefix="/events", tags=["events"])
api_router.include_router(
    achievements.router, prefix="/achievements", tags=["achievements"]
)
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
