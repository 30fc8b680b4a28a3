# lifelog/main.py
import asyncio
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from lifelog.api.api import api_router
from lifelog.core.config import settings
from lifelog.core.logging import setup_logging
from lifelog.core.error_handlers import register_exception_handlers
from lifelog.core.middleware import register_middlewares
from lifelog.db.base import SessionLocal
from lifelog.integrations.notifications import get_notifier
from lifelog.services import register_services
from lifelog.services.achievement_service import AchievementService
from lifelog.services.notification_service import NotificationService

# Set up the logger at the start
logger = setup_logging()


def run_maintenance() -> dict:
    """Expire records of closed windows, then retry undelivered notifications."""
    db = SessionLocal()
    try:
        expired = AchievementService(db).expire_overdue()
        notified = NotificationService(db, get_notifier()).retry_pending()
        return {"expired": expired, "notified": notified}
    finally:
        db.close()


# Background task for achievement maintenance
async def maintenance_loop():
    while True:
        try:
            result = await asyncio.to_thread(run_maintenance)
            if result["expired"] or result["notified"]:
                logger.info(
                    f"Maintenance expired {result['expired']} records, "
                    f"delivered {result['notified']} notifications"
                )
            await asyncio.sleep(settings.MAINTENANCE_INTERVAL_SECONDS)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in background task: {str(e)}", exc_info=True)
            # Wait for a minute before retrying
            await asyncio.sleep(60)


# Context manager for startup/shutdown events
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Log application startup
    logger.info(f"Starting Lifelog Achievements API {app.version}")

    # Register services
    register_services()
    logger.info("Services registered")

    background_task = None
    if settings.ENABLE_MAINTENANCE_LOOP:
        background_task = asyncio.create_task(maintenance_loop())

    yield

    if background_task is not None:
        # Cancel background tasks on shutdown
        logger.info("Shutting down application and background tasks")
        background_task.cancel()
        try:
            await background_task
        except asyncio.CancelledError:
            logger.info("Background tasks cancelled successfully")


app = FastAPI(
    title="Lifelog Achievements API",
    description="Achievement engine for a life-logging app: goals, progress and rankings",
    version="0.1.0",
    lifespan=lifespan,
)

# Register custom exception handlers
register_exception_handlers(app)

# Register middleware
register_middlewares(app)

# Set up CORS middleware
if settings.BACKEND_CORS_ORIGINS:
    allowed_origins = [str(origin) for origin in settings.BACKEND_CORS_ORIGINS]
    logger.info(f"Setting up CORS with allowed origins: {allowed_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    return {"message": "Welcome to the Lifelog Achievements API"}


def create_app():
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
