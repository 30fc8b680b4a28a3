from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from lifelog import models, schemas
from lifelog.core.constants import AchievementStatus, DefinitionStatus
from lifelog.core.exceptions import (
    AuthorizationException,
    DuplicateResourceException,
    ValidationException,
)
from lifelog.repositories.achievement_repository import ProgressRecordRepository
from lifelog.services.catalog_service import CatalogService
from lifelog.services.event_processor import EventProcessor


def definition_payload(**overrides):
    data = {
        "name": "Storyteller",
        "description": "Record 10 moments",
        "category": "moments",
        "difficulty": "silver",
        "points": 25,
        "condition_type": "count",
        "condition_field": "moments",
        "condition_target": 10,
    }
    data.update(overrides)
    return schemas.AchievementDefinitionCreate(**data)


class TestCreateDefinition:
    @pytest.fixture
    def catalog(self, db):
        return CatalogService(db, notifier=MagicMock())

    def test_create_fills_default_triggers(self, db, catalog, admin):
        definition = catalog.create_definition(admin, definition_payload())

        assert definition.id is not None
        assert definition.status == DefinitionStatus.ACTIVE
        assert definition.trigger_events == ["moment_created"]
        assert definition.created_by_id == admin.id

    def test_zero_target_is_rejected_and_not_persisted(self, db, catalog, admin):
        with pytest.raises(ValidationException):
            catalog.create_definition(admin, definition_payload(condition_target=0))

        assert db.query(models.AchievementDefinition).count() == 0

    def test_non_positive_points_are_rejected(self, catalog, admin):
        with pytest.raises(ValidationException):
            catalog.create_definition(admin, definition_payload(points=0))

    def test_duplicate_name_is_case_insensitive(self, catalog, admin):
        catalog.create_definition(admin, definition_payload())

        with pytest.raises(DuplicateResourceException):
            catalog.create_definition(admin, definition_payload(name="  storyTELLER "))

    def test_name_length_is_limited(self, catalog, admin):
        with pytest.raises(ValidationException):
            catalog.create_definition(admin, definition_payload(name="x" * 51))

    def test_unknown_category_is_rejected(self, catalog, admin):
        with pytest.raises(ValidationException) as exc:
            catalog.create_definition(admin, definition_payload(category="cooking"))
        assert "moments" in exc.value.details["allowed"]

    def test_milestone_target_must_be_one(self, catalog, admin):
        with pytest.raises(ValidationException):
            catalog.create_definition(
                admin,
                definition_payload(
                    condition_type="milestone",
                    condition_field="new_year_moments",
                    condition_target=2,
                ),
            )

    def test_bad_hour_param_is_rejected(self, db, catalog, admin):
        for hour in ("6", 24, -1, True):
            with pytest.raises(ValidationException):
                catalog.create_definition(
                    admin,
                    definition_payload(
                        condition_type="milestone",
                        condition_field="early_morning_moments",
                        condition_target=1,
                        condition_params={"hour": hour},
                    ),
                )

        assert db.query(models.AchievementDefinition).count() == 0

    def test_valid_hour_param_is_kept(self, catalog, admin):
        definition = catalog.create_definition(
            admin,
            definition_payload(
                condition_type="milestone",
                condition_field="late_night_moments",
                condition_target=1,
                condition_params={"hour": 22},
            ),
        )

        assert definition.condition_params == {"hour": 22}

    def test_inverted_window_is_rejected(self, catalog, admin):
        now = datetime.utcnow()
        with pytest.raises(ValidationException):
            catalog.create_definition(
                admin, definition_payload(active_from=now, active_until=now - timedelta(days=1))
            )

    def test_unknown_field_requires_triggers(self, catalog, admin):
        with pytest.raises(ValidationException):
            catalog.create_definition(admin, definition_payload(condition_field="telepathy"))

        definition = catalog.create_definition(
            admin,
            definition_payload(condition_field="telepathy", trigger_events=["moment_created"]),
        )
        assert definition.trigger_events == ["moment_created"]

    def test_unknown_trigger_is_rejected(self, catalog, admin):
        with pytest.raises(ValidationException):
            catalog.create_definition(admin, definition_payload(trigger_events=["moment_deleted"]))

    def test_non_admin_cannot_create(self, catalog, user):
        with pytest.raises(AuthorizationException):
            catalog.create_definition(user, definition_payload())


class TestUpdateDefinition:
    @pytest.fixture
    def catalog(self, db):
        return CatalogService(db, notifier=MagicMock())

    def test_condition_is_immutable(self, catalog, admin, make_definition):
        definition = make_definition(condition_target=5)

        with pytest.raises(ValidationException) as exc:
            catalog.update_definition(
                admin, definition.id, schemas.AchievementDefinitionUpdate(condition_target=6)
            )
        assert exc.value.details == {"field": "condition_target"}

    def test_unchanged_condition_is_accepted(self, catalog, admin, make_definition):
        definition = make_definition(condition_target=5)

        updated = catalog.update_definition(
            admin,
            definition.id,
            schemas.AchievementDefinitionUpdate(condition_type="count", description="new words"),
        )

        assert updated.description == "new words"

    def test_points_edit_leaves_snapshots_alone(self, db, catalog, admin, user, make_definition, add_moment):
        definition = make_definition("Old Timer", points=10)
        add_moment(user)
        EventProcessor(db, notifier=MagicMock(), workers=1).process(user.id, "moment_created")

        catalog.update_definition(
            admin, definition.id, schemas.AchievementDefinitionUpdate(points=50, name="Veteran")
        )

        record = ProgressRecordRepository(db).get_user_record(user.id, definition.id)
        db.refresh(record)
        db.refresh(user)
        assert record.snapshot["points"] == 10
        assert record.snapshot["name"] == "Old Timer"
        assert record.awarded_points == 10
        assert user.total_points == 10

    def test_rename_to_taken_name_conflicts(self, catalog, admin, make_definition):
        make_definition("Taken")
        definition = make_definition("Free")

        with pytest.raises(DuplicateResourceException):
            catalog.update_definition(
                admin, definition.id, schemas.AchievementDefinitionUpdate(name="taken")
            )


class TestRetireDefinition:
    @pytest.fixture
    def catalog(self, db):
        return CatalogService(db, notifier=MagicMock())

    def test_soft_retire_expires_open_records(self, db, catalog, admin, user, make_user, make_definition, add_moment):
        definition = make_definition(points=10)
        other = make_user()
        add_moment(user)
        processor = EventProcessor(db, notifier=MagicMock(), workers=1)
        processor.process(user.id, "moment_created")
        processor.ensure_records(other.id)

        result = catalog.retire_definition(admin, definition.id)

        records = ProgressRecordRepository(db)
        mine = records.get_user_record(user.id, definition.id)
        theirs = records.get_user_record(other.id, definition.id)
        db.refresh(definition)
        assert result.hard_deleted is False
        assert result.expired_records == 1
        assert definition.status == DefinitionStatus.RETIRED
        assert mine.status == AchievementStatus.ACHIEVED
        assert theirs.status == AchievementStatus.EXPIRED

    def test_hard_delete_removes_records(self, db, catalog, admin, user, make_definition):
        definition = make_definition()
        EventProcessor(db, notifier=MagicMock(), workers=1).ensure_records(user.id)
        definition_id = definition.id

        result = catalog.retire_definition(admin, definition_id, hard_delete=True)

        assert result.hard_deleted is True
        assert db.get(models.AchievementDefinition, definition_id) is None
        assert (
            db.query(models.ProgressRecord)
            .filter(models.ProgressRecord.definition_id == definition_id)
            .count()
            == 0
        )


class TestBackfillDefinition:
    @pytest.fixture
    def notifier(self):
        return MagicMock()

    @pytest.fixture
    def catalog(self, db, notifier):
        return CatalogService(db, notifier=notifier)

    def test_backfill_awards_existing_activity(self, db, catalog, notifier, admin, make_user, make_definition, add_moment):
        definition = make_definition(condition_target=2, points=15)
        busy, idle = make_user(), make_user()
        add_moment(busy)
        add_moment(busy)
        add_moment(idle)

        result = catalog.backfill_definition(admin, definition.id, batch_size=2)

        records = ProgressRecordRepository(db)
        db.refresh(busy)
        assert result.completed is True
        assert result.processed_count == 3
        assert result.newly_completed == 1
        assert records.get_user_record(busy.id, definition.id).status == AchievementStatus.ACHIEVED
        assert records.get_user_record(idle.id, definition.id).current == 1
        assert busy.total_points == 15
        notifier.notify.assert_called_once()
        history = records.get_user_record(busy.id, definition.id).history
        assert history[-1].trigger_event == "backfill"

    def test_backfill_resumes_after_checkpoint(self, db, catalog, admin, make_user, make_definition, add_moment):
        definition = make_definition(condition_target=1)
        first, second = make_user(), make_user()
        add_moment(first)
        add_moment(second)
        records = ProgressRecordRepository(db)
        records.save_checkpoint(definition.id, last_user_id=first.id, processed=2)
        db.commit()

        result = catalog.backfill_definition(admin, definition.id)

        assert result.processed_count == 3
        assert result.last_user_id == second.id
        assert result.newly_completed == 1
        assert records.get_user_record(first.id, definition.id) is None
        assert records.get_user_record(second.id, definition.id).status == AchievementStatus.ACHIEVED

    def test_backfill_is_idempotent(self, db, catalog, admin, user, make_definition, add_moment):
        definition = make_definition(points=10)
        add_moment(user)

        catalog.backfill_definition(admin, definition.id)
        again = catalog.backfill_definition(admin, definition.id)

        db.refresh(user)
        assert again.newly_completed == 0
        assert user.total_points == 10

    def test_retired_definition_cannot_backfill(self, db, catalog, admin, make_definition):
        definition = make_definition()
        catalog.retire_definition(admin, definition.id)

        with pytest.raises(ValidationException):
            catalog.backfill_definition(admin, definition.id)
