from unittest.mock import MagicMock

import pytest
import requests

from lifelog import models
from lifelog.db.seed import DEFAULT_ACHIEVEMENTS, seed_achievements
from lifelog.integrations.notifications import NotificationDeliveryError, WebhookNotifier
from lifelog.services import condition_evaluator


class TestSeedAchievements:
    def test_every_default_has_an_evaluator(self):
        for goal in DEFAULT_ACHIEVEMENTS:
            assert condition_evaluator.supports(goal["condition_type"], goal["condition_field"]), goal["name"]

    def test_seed_is_idempotent(self, db):
        first = seed_achievements(db)
        second = seed_achievements(db)

        assert first == {"created": len(DEFAULT_ACHIEVEMENTS), "updated": 0}
        assert second == {"created": 0, "updated": 0}
        assert db.query(models.AchievementDefinition).count() == len(DEFAULT_ACHIEVEMENTS)

    def test_seed_refreshes_descriptions_only(self, db):
        seed_achievements(db)
        definition = db.query(models.AchievementDefinition).filter_by(
            name=DEFAULT_ACHIEVEMENTS[0]["name"]
        ).first()
        definition.description = "stale"
        definition.condition_target = 99
        db.commit()

        result = seed_achievements(db)

        db.refresh(definition)
        assert result["updated"] == 1
        assert definition.description == DEFAULT_ACHIEVEMENTS[0]["description"]
        assert definition.condition_target == 99


class TestWebhookNotifier:
    @pytest.fixture
    def session(self):
        return MagicMock(spec=requests.Session)

    def test_posts_message_with_user(self, session):
        notifier = WebhookNotifier(url="https://hooks.example.com/notify", timeout=2, session=session)

        notifier.notify(7, {"type": "achievement", "title": "Achievement unlocked: Explorer"})

        session.post.assert_called_once_with(
            "https://hooks.example.com/notify",
            json={"user_id": 7, "type": "achievement", "title": "Achievement unlocked: Explorer"},
            timeout=2,
        )

    def test_http_error_becomes_delivery_error(self, session):
        session.post.return_value.raise_for_status.side_effect = requests.HTTPError("503")
        notifier = WebhookNotifier(url="https://hooks.example.com/notify", session=session)

        with pytest.raises(NotificationDeliveryError):
            notifier.notify(7, {"type": "achievement"})

    def test_timeout_becomes_delivery_error(self, session):
        session.post.side_effect = requests.Timeout()
        notifier = WebhookNotifier(url="https://hooks.example.com/notify", timeout=1, session=session)

        with pytest.raises(NotificationDeliveryError, match="timed out"):
            notifier.notify(7, {"type": "achievement"})
