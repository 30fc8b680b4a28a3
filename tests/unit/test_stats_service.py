from datetime import datetime, timedelta

import pytest

from lifelog import models
from lifelog.core.constants import AchievementStatus, LeaderboardMetric, LeaderboardPeriod
from lifelog.core.exceptions import AuthorizationException, ResourceNotFoundException
from lifelog.services.stats_service import StatsService

NOW = datetime(2024, 6, 15, 12, 0)


@pytest.fixture
def make_record(db):
    """Insert a progress record in a given state without going through the engine."""

    def _make_record(user, definition, status=AchievementStatus.ACHIEVED, achieved_at=None, points=None):
        achieved = status == AchievementStatus.ACHIEVED
        record = models.ProgressRecord(
            user_id=user.id,
            definition_id=definition.id,
            status=status,
            current=definition.condition_target if achieved else 0,
            target=definition.condition_target,
            achieved_at=(achieved_at or NOW) if achieved else None,
            awarded_points=(points if points is not None else definition.points) if achieved else None,
            notified=True,
        )
        db.add(record)
        db.commit()
        return record

    return _make_record


class TestLeaderboard:
    def test_weekly_board_ignores_older_achievements(self, db, make_user, make_definition, make_record):
        alice, bob = make_user("alice"), make_user("bob")
        big = make_definition(points=100)
        small = make_definition(points=10)
        medium = make_definition(points=30)

        make_record(alice, big, achieved_at=NOW - timedelta(days=30))
        make_record(alice, small, achieved_at=NOW - timedelta(days=1))
        make_record(bob, medium, achieved_at=NOW - timedelta(days=2))

        board = StatsService(db).get_leaderboard(
            LeaderboardMetric.TOTAL_POINTS, LeaderboardPeriod.WEEK, limit=10, now=NOW
        )

        assert [(e.rank, e.username, e.total_points) for e in board.entries] == [
            (1, "bob", 30),
            (2, "alice", 10),
        ]

    def test_all_time_board_counts_everything(self, db, make_user, make_definition, make_record):
        alice, bob = make_user("alice"), make_user("bob")
        big = make_definition(points=100)
        small = make_definition(points=10)

        make_record(alice, big, achieved_at=NOW - timedelta(days=300))
        make_record(bob, small)

        board = StatsService(db).get_leaderboard(now=NOW)

        assert [e.username for e in board.entries] == ["alice", "bob"]
        assert board.entries[0].total_points == 100

    def test_count_metric_breaks_ties_on_points(self, db, make_user, make_definition, make_record):
        alice, bob = make_user("alice"), make_user("bob")
        cheap = make_definition(points=5)
        pricey = make_definition(points=50)

        make_record(alice, cheap)
        make_record(bob, pricey)

        board = StatsService(db).get_leaderboard(LeaderboardMetric.ACHIEVEMENT_COUNT, now=NOW)

        assert [e.username for e in board.entries] == ["bob", "alice"]
        assert all(e.achievement_count == 1 for e in board.entries)

    def test_equal_scores_rank_earliest_first(self, db, make_user, make_definition, make_record):
        late, early = make_user("late"), make_user("early")
        one = make_definition(points=20)
        two = make_definition(points=20)

        make_record(late, one, achieved_at=NOW - timedelta(hours=1))
        make_record(early, two, achieved_at=NOW - timedelta(hours=5))

        board = StatsService(db).get_leaderboard(now=NOW)

        assert [e.username for e in board.entries] == ["early", "late"]

    def test_open_records_never_rank(self, db, user, make_definition, make_record):
        make_record(user, make_definition(), status=AchievementStatus.IN_PROGRESS)

        board = StatsService(db).get_leaderboard(now=NOW)

        assert board.entries == []

    def test_limit_is_applied(self, db, make_user, make_definition, make_record):
        goal = make_definition()
        for _ in range(4):
            make_record(make_user(), goal)

        board = StatsService(db).get_leaderboard(limit=2, now=NOW)

        assert len(board.entries) == 2


class TestUserStats:
    def test_summary_uses_frozen_points(self, db, user, make_definition, make_record):
        first = make_definition(points=10, category="moments")
        second = make_definition(points=40, category="social")
        third = make_definition(points=99, category="social")
        make_record(user, first)
        make_record(user, second, points=25)
        make_record(user, third, status=AchievementStatus.IN_PROGRESS)
        make_record(user, make_definition(), status=AchievementStatus.NOT_STARTED)

        stats = StatsService(db).get_user_stats(user.id)

        assert stats.total == 4
        assert stats.by_status.achieved == 2
        assert stats.by_status.in_progress == 1
        assert stats.total_points == 35
        assert stats.completion_rate == 50.0
        assert stats.by_category["social"].total == 2
        assert stats.by_category["social"].achieved == 1
        assert stats.by_category["social"].points == 25
        assert len(stats.recent) == 2

    def test_empty_user_has_zero_rate(self, db, user):
        stats = StatsService(db).get_user_stats(user.id)

        assert stats.total == 0
        assert stats.completion_rate == 0.0

    def test_other_users_stats_need_admin(self, db, user, make_user, admin):
        other = make_user()

        with pytest.raises(AuthorizationException):
            StatsService(db).get_user_stats(other.id, actor=user)
        assert StatsService(db).get_user_stats(other.id, actor=admin).user_id == other.id


class TestDefinitionStats:
    def test_counts_by_status(self, db, make_user, make_definition, make_record):
        goal = make_definition()
        make_record(make_user(), goal)
        make_record(make_user(), goal, status=AchievementStatus.IN_PROGRESS)
        make_record(make_user(), goal, status=AchievementStatus.EXPIRED)

        stats = StatsService(db).get_definition_stats(goal.id)

        assert stats.total == 3
        assert stats.achieved_count == 1
        assert stats.in_progress_count == 1
        assert stats.by_status.expired == 1

    def test_unknown_definition(self, db):
        with pytest.raises(ResourceNotFoundException):
            StatsService(db).get_definition_stats(999)
