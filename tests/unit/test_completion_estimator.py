from datetime import datetime, timedelta
from types import SimpleNamespace

from lifelog.services.completion_estimator import estimate_completion

START = datetime(2024, 1, 1)
NOW = datetime(2024, 1, 10)


def entries(*points):
    return [SimpleNamespace(value=v, timestamp=START + timedelta(days=d)) for d, v in points]


class TestCompletionEstimator:
    def test_linear_projection(self):
        # 1 per day, 5 remaining
        history = entries((0, 1), (1, 2), (2, 3), (3, 4), (4, 5))
        assert estimate_completion(history, 10, 5, now=NOW) == NOW + timedelta(days=5)

    def test_uses_only_the_trailing_window(self):
        # Early slow start, recent 2 per day
        history = entries((0, 1), (10, 2), (11, 4), (12, 6))
        projected = estimate_completion(history, 10, 6, now=NOW, window=3)
        assert projected == NOW + timedelta(days=2)

    def test_needs_two_entries(self):
        assert estimate_completion(entries((0, 1)), 10, 1, now=NOW) is None

    def test_none_when_already_at_target(self):
        assert estimate_completion(entries((0, 1), (1, 5)), 5, 5, now=NOW) is None

    def test_none_for_flat_or_falling_progress(self):
        assert estimate_completion(entries((0, 3), (1, 3)), 10, 3, now=NOW) is None
        assert estimate_completion(entries((0, 3), (1, 1)), 10, 1, now=NOW) is None

    def test_none_when_no_time_elapsed(self):
        assert estimate_completion(entries((0, 1), (0, 2)), 10, 2, now=NOW) is None
