"""
Shared fixtures and configuration for all tests.
"""
import os
from datetime import datetime
from itertools import count

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Override environment settings for testing
os.environ["ENVIRONMENT"] = "testing"
os.environ["SECRET_KEY"] = "testsecretkey"
os.environ["BACKEND_CORS_ORIGINS"] = '["http://localhost:3000"]'
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["ENABLE_MAINTENANCE_LOOP"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

from lifelog import models
from lifelog.api.deps import get_current_user
from lifelog.core.constants import AchievementCategory, ConditionType, Difficulty
from lifelog.db.base import Base
from lifelog.db.session import get_db
from lifelog.main import app
from lifelog.services.condition_evaluator import default_triggers

# In-memory SQLite shared by every connection of the test
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

_sequence = count(1)


# Test fixtures for the database
@pytest.fixture
def db():
    """
    Create a fresh database for each test.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

    # Drop tables after the test
    Base.metadata.drop_all(bind=engine)


# Factories
@pytest.fixture
def make_user(db):
    def _make_user(username=None, is_admin=False, **kwargs):
        n = next(_sequence)
        user = models.User(
            username=username or f"user{n}",
            email=f"{username or 'user'}{n}@example.com",
            hashed_password="fakehashed_password",
            is_active=True,
            is_admin=is_admin,
            **kwargs,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user("alice")


@pytest.fixture
def admin(make_user):
    return make_user("admin", is_admin=True)


@pytest.fixture
def make_definition(db):
    """Insert a definition directly, bypassing catalog validation."""

    def _make_definition(name=None, **overrides):
        field = overrides.get("condition_field", "moments")
        data = {
            "name": name or f"Goal {next(_sequence)}",
            "description": "test goal",
            "category": "moments",
            "difficulty": "bronze",
            "points": 10,
            "condition_type": "count",
            "condition_field": field,
            "condition_target": 1,
            "condition_params": {},
            "trigger_events": default_triggers(field) or ["moment_created"],
        }
        data.update(overrides)
        data["category"] = AchievementCategory(data["category"])
        data["difficulty"] = Difficulty(data["difficulty"])
        data["condition_type"] = ConditionType(data["condition_type"])
        definition = models.AchievementDefinition(**data)
        db.add(definition)
        db.commit()
        db.refresh(definition)
        return definition

    return _make_definition


@pytest.fixture
def add_moment(db):
    def _add_moment(user, created_at=None, content_type="text", **kwargs):
        moment = models.Moment(
            user_id=user.id,
            content_type=models.ContentType(content_type),
            created_at=created_at or datetime.utcnow(),
            **kwargs,
        )
        db.add(moment)
        db.commit()
        db.refresh(moment)
        return moment

    return _add_moment


# Test client with authentication
@pytest.fixture
def client():
    """Return a TestClient for making requests to the app."""
    return TestClient(app)


@pytest.fixture
def client_as(client, db):
    """Return a function that authenticates the TestClient as the given user."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    def _client_as(user):
        app.dependency_overrides[get_current_user] = lambda: user
        return client

    yield _client_as

    # Reset overrides after test
    app.dependency_overrides = {}
