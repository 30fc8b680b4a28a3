import pytest
from fastapi import status

from lifelog.core.config import settings
from lifelog.core.security import create_access_token
from lifelog.db.session import get_db
from lifelog.main import app

API = settings.API_V1_STR


class TestEventsAPI:
    """
    Test cases for the event submission endpoint

    Note: These tests use routes with the '/api/v1' prefix to match the actual application setup
    """

    def test_submit_event_completes_achievement(self, client_as, user, make_definition, add_moment):
        definition = make_definition("First Moment", points=10)
        moment = add_moment(user)

        response = client_as(user).post(
            f"{API}/events/",
            json={
                "event_type": "moment_created",
                "related_entity_id": moment.id,
                "related_entity_type": "Moment",
            },
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["updated_count"] == 1
        assert body["newly_completed"][0]["definition_id"] == definition.id
        assert body["newly_completed"][0]["points"] == 10
        assert body["failed"] == []

    def test_utc_suffixed_timestamp_is_accepted(self, client_as, user, make_definition, add_moment):
        definition = make_definition(condition_target=5)
        add_moment(user)
        client = client_as(user)
        client.post(f"{API}/events/", json={"event_type": "moment_created", "related_entity_id": 1})
        add_moment(user)

        response = client.post(
            f"{API}/events/",
            json={
                "event_type": "moment_created",
                "related_entity_id": 2,
                "occurred_at": "2026-10-18T10:00:00Z",
            },
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["updated_count"] == 1
        record = client.get(f"{API}/achievements/").json()["items"][0]
        assert record["definition_id"] == definition.id
        assert record["current"] == 2

    def test_unknown_event_type(self, client_as, user):
        response = client_as(user).post(f"{API}/events/", json={"event_type": "moment_deleted"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["error"] == "validation_error"


class TestAchievementsAPI:
    def test_list_my_achievements(self, client_as, user, make_definition, add_moment):
        make_definition("First Moment")
        make_definition("Ten Moments", condition_target=10)
        add_moment(user)
        client = client_as(user)
        client.post(f"{API}/events/", json={"event_type": "moment_created"})

        response = client.get(f"{API}/achievements/", params={"sort_by": "percentage"})

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["total"] == 2
        assert [item["percentage"] for item in body["items"]] == [100.0, 10.0]
        assert body["items"][1]["remaining"] == 9
        assert body["items"][0]["definition"]["name"] == "First Moment"

    def test_initialize_and_read_record(self, client_as, user, make_definition):
        make_definition()
        client = client_as(user)

        assert client.post(f"{API}/achievements/initialize").json() == {"created": 1}
        record_id = client.get(f"{API}/achievements/").json()["items"][0]["id"]

        response = client.get(f"{API}/achievements/{record_id}")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "not_started"
        assert response.json()["history"] == []

    def test_other_users_records_are_forbidden(self, client_as, user, make_user):
        other = make_user()

        response = client_as(user).get(f"{API}/achievements/users/{other.id}")

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_missing_record(self, client_as, user):
        response = client_as(user).get(f"{API}/achievements/999")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_catalog_hides_secret_goals(self, client_as, user, make_definition):
        make_definition("Visible")
        make_definition("Secret", is_hidden=True)

        response = client_as(user).get(f"{API}/achievements/definitions")

        assert [d["name"] for d in response.json()] == ["Visible"]

    def test_leaderboard_and_stats(self, client_as, user, make_definition, add_moment):
        make_definition(points=15)
        add_moment(user)
        client = client_as(user)
        client.post(f"{API}/events/", json={"event_type": "moment_created"})

        board = client.get(f"{API}/achievements/leaderboard", params={"period": "week"}).json()
        stats = client.get(f"{API}/achievements/stats").json()

        assert board["entries"][0]["user_id"] == user.id
        assert board["entries"][0]["total_points"] == 15
        assert stats["total_points"] == 15
        assert stats["completion_rate"] == 100.0


class TestAdminAPI:
    def definition_body(self, **overrides):
        body = {
            "name": "Globetrotter",
            "category": "exploration",
            "difficulty": "gold",
            "points": 50,
            "condition_type": "count",
            "condition_field": "unique_cities",
            "condition_target": 5,
        }
        body.update(overrides)
        return body

    def test_admin_creates_definition(self, client_as, admin):
        response = client_as(admin).post(f"{API}/admin/achievements", json=self.definition_body())

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["trigger_events"] == ["moment_created", "location_visited"]
        assert body["status"] == "active"

    def test_non_admin_is_forbidden(self, client_as, user):
        response = client_as(user).post(f"{API}/admin/achievements", json=self.definition_body())

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_invalid_target(self, client_as, admin):
        response = client_as(admin).post(
            f"{API}/admin/achievements", json=self.definition_body(condition_target=0)
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["error"] == "validation_error"

    def test_malformed_condition_params(self, client_as, admin):
        response = client_as(admin).post(
            f"{API}/admin/achievements",
            json=self.definition_body(
                name="Early Bird",
                condition_type="milestone",
                condition_field="early_morning_moments",
                condition_target=1,
                condition_params={"hour": "6"},
            ),
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["error"] == "validation_error"

    def test_duplicate_name_conflicts(self, client_as, admin):
        client = client_as(admin)
        client.post(f"{API}/admin/achievements", json=self.definition_body())

        response = client.post(f"{API}/admin/achievements", json=self.definition_body())

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_condition_change_is_rejected(self, client_as, admin, make_definition):
        definition = make_definition(condition_target=3)

        response = client_as(admin).patch(
            f"{API}/admin/achievements/{definition.id}", json={"condition_target": 4}
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_grant_and_reset(self, client_as, admin, user, make_definition):
        definition = make_definition(is_repeatable=True, points=5)
        client = client_as(admin)

        granted = client.post(
            f"{API}/admin/progress/grant",
            json={"user_id": user.id, "definition_id": definition.id, "reason": "support ticket"},
        )
        assert granted.status_code == status.HTTP_200_OK
        assert granted.json()["status"] == "achieved"
        assert granted.json()["is_manually_granted"] is True

        again = client.post(
            f"{API}/admin/progress/grant",
            json={"user_id": user.id, "definition_id": definition.id},
        )
        assert again.status_code == status.HTTP_409_CONFLICT

        reset = client.post(f"{API}/admin/progress/{granted.json()['id']}/reset")
        assert reset.status_code == status.HTTP_200_OK
        assert reset.json()["status"] == "not_started"

    def test_negative_progress_is_rejected(self, client_as, admin):
        response = client_as(admin).put(f"{API}/admin/progress/1", json={"current": -1})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_retire_and_stats(self, client_as, admin, user, make_definition):
        definition = make_definition()
        client = client_as(admin)
        client.post(f"{API}/admin/progress/grant", json={"user_id": user.id, "definition_id": definition.id})

        stats = client.get(f"{API}/admin/achievements/{definition.id}/stats").json()
        retired = client.delete(f"{API}/admin/achievements/{definition.id}").json()

        assert stats["achieved_count"] == 1
        assert retired == {"definition_id": definition.id, "hard_deleted": False, "expired_records": 0}


class TestAuthentication:
    @pytest.fixture
    def db_client(self, client, db):
        app.dependency_overrides[get_db] = lambda: db
        yield client
        app.dependency_overrides = {}

    def test_bearer_token_resolves_user(self, db_client, user):
        token = create_access_token(user.id)

        response = db_client.get(
            f"{API}/achievements/stats", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["user_id"] == user.id

    def test_invalid_token_is_rejected(self, db_client):
        response = db_client.get(
            f"{API}/achievements/", headers={"Authorization": "Bearer not-a-token"}
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_admin_routes_need_admin_token(self, db_client, user):
        token = create_access_token(user.id)

        response = db_client.get(
            f"{API}/admin/achievements/1/stats", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
