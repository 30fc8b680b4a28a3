"""
Service registry module.

This module registers all services with the dependency injection system.
Service classes are imported inside the function: the ORM models import the
completion estimator from this package, so importing services here at module
level would be circular.
"""


def register_services():
    """Register all services with the dependency injection system."""
    from lifelog.db.base import SessionLocal
    from lifelog.integrations.notifications import get_notifier
    from lifelog.utils.dependencies import register_service

    from lifelog.services.achievement_service import AchievementService
    from lifelog.services.catalog_service import CatalogService
    from lifelog.services.event_processor import EventProcessor
    from lifelog.services.notification_service import NotificationService
    from lifelog.services.stats_service import StatsService
    from lifelog.services.user_service import UserService

    # Register each service with its factory function
    register_service(UserService, lambda db: UserService(db))
    register_service(StatsService, lambda db: StatsService(db))
    register_service(AchievementService, lambda db: AchievementService(db, get_notifier()))
    register_service(CatalogService, lambda db: CatalogService(db, get_notifier()))
    register_service(NotificationService, lambda db: NotificationService(db, get_notifier()))
    register_service(
        EventProcessor,
        lambda db: EventProcessor(db, notifier=get_notifier(), session_factory=SessionLocal),
    )
