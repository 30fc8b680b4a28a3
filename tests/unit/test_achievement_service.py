from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.orm.exc import StaleDataError

from lifelog import schemas
from lifelog.core.constants import AchievementStatus
from lifelog.core.exceptions import (
    AuthorizationException,
    ConcurrentUpdateException,
    ConflictException,
    ResourceNotFoundException,
    ValidationException,
)
from lifelog.services.achievement_service import AchievementService


class TestAchievementService:
    """
    Test cases for progress reads and administrative progress edits
    """

    @pytest.fixture
    def notifier(self):
        return MagicMock()

    @pytest.fixture
    def service(self, db, notifier):
        return AchievementService(db, notifier=notifier)

    def test_initialize_user_creates_missing_records(self, service, user, make_definition):
        make_definition()
        make_definition()

        assert service.initialize_user(user.id) == 2
        assert service.initialize_user(user.id) == 0

    def test_initialize_unknown_user(self, service):
        with pytest.raises(ResourceNotFoundException):
            service.initialize_user(12345)

    def test_hidden_records_stay_hidden_until_achieved(self, service, user, admin, make_definition):
        make_definition("Visible")
        make_definition("Secret", is_hidden=True)
        service.initialize_user(user.id)

        records, total = service.get_user_achievements(user, user.id)
        assert total == 1
        assert records[0].definition.name == "Visible"

        records, total = service.get_user_achievements(admin, user.id)
        assert total == 2

    def test_filters_and_pagination(self, service, user, make_definition):
        for _ in range(3):
            make_definition(category="social", condition_field="likes_received")
        make_definition(category="moments")
        service.initialize_user(user.id)

        filters = schemas.AchievementFilters(category="social", limit=2, sort_by="created_at")
        records, total = service.get_user_achievements(user, user.id, filters)

        assert total == 3
        assert len(records) == 2

    def test_cannot_read_other_users_records(self, service, user, make_user, make_definition):
        other = make_user()
        make_definition()
        service.initialize_user(other.id)

        with pytest.raises(AuthorizationException):
            service.get_user_achievements(user, other.id)

        records, _ = service.get_user_achievements(other, other.id)
        with pytest.raises(AuthorizationException):
            service.get_record(user, records[0].id)

    def test_grant_credits_points_and_notifies(self, db, service, notifier, admin, user, make_definition):
        definition = make_definition(points=30)

        record = service.grant(admin, user.id, definition.id, reason="Beta tester")

        db.refresh(user)
        assert record.status == AchievementStatus.ACHIEVED
        assert record.is_manually_granted
        assert record.granted_by_id == admin.id
        assert record.grant_reason == "Beta tester"
        assert record.awarded_points == 30
        assert record.history[-1].trigger_event == "manual"
        assert user.total_points == 30
        notifier.notify.assert_called_once()

    def test_grant_twice_conflicts(self, db, service, admin, user, make_definition):
        definition = make_definition(points=30)
        service.grant(admin, user.id, definition.id)

        with pytest.raises(ConflictException):
            service.grant(admin, user.id, definition.id)

        db.refresh(user)
        assert user.total_points == 30

    def test_grant_requires_admin(self, service, user, make_definition):
        definition = make_definition()

        with pytest.raises(AuthorizationException):
            service.grant(user, user.id, definition.id)

    def test_set_progress_advances_and_achieves(self, db, service, admin, user, make_definition):
        definition = make_definition(condition_target=5, points=20)
        service.initialize_user(user.id)
        records, _ = service.get_user_achievements(user, user.id)
        record_id = records[0].id

        record = service.set_progress(admin, record_id, 3)
        assert record.status == AchievementStatus.IN_PROGRESS
        assert record.percentage == 60.0

        record = service.set_progress(admin, record_id, 5)
        db.refresh(user)
        assert record.status == AchievementStatus.ACHIEVED
        assert record.snapshot["points"] == definition.points
        assert user.total_points == 20

    def test_set_progress_on_closed_record_conflicts(self, service, admin, user, make_definition):
        definition = make_definition()
        record = service.grant(admin, user.id, definition.id)

        with pytest.raises(ConflictException):
            service.set_progress(admin, record.id, 0)

    def test_reset_repeatable_keeps_achievement_count(self, service, admin, user, make_definition):
        definition = make_definition(is_repeatable=True)
        record = service.grant(admin, user.id, definition.id)

        record = service.reset(admin, record.id)

        assert record.status == AchievementStatus.NOT_STARTED
        assert record.current == 0
        assert record.snapshot is None
        assert record.history == []
        assert record.times_achieved == 1

    def test_reset_non_repeatable_is_rejected(self, service, admin, user, make_definition):
        definition = make_definition()
        record = service.grant(admin, user.id, definition.id)

        with pytest.raises(ValidationException):
            service.reset(admin, record.id)

    def test_expire_overdue(self, service, user, make_definition):
        make_definition(active_until=datetime.utcnow() - timedelta(hours=1))
        make_definition()
        service.initialize_user(user.id)

        assert service.expire_overdue() == 1
        assert service.expire_overdue() == 0

    def test_stale_commit_becomes_concurrent_update(self, db, service, admin, user, make_definition):
        make_definition(condition_target=5)
        service.initialize_user(user.id)
        records, _ = service.get_user_achievements(user, user.id)

        with patch.object(db, "commit", side_effect=StaleDataError("version mismatch")):
            with pytest.raises(ConcurrentUpdateException):
                service.set_progress(admin, records[0].id, 2)
