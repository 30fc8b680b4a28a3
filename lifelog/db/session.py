"""
Database session management utilities.
"""

from typing import Generator

from sqlalchemy.orm import Session

from lifelog.db.base import SessionLocal, Base, engine


def get_db() -> Generator[Session, None, None]:
    """
    Get a database session.

    Yields:
        SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create all tables. Used by scripts and local development."""
    # Import models so they register on Base.metadata
    import lifelog.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
