# lifelog/services/completion_estimator.py
"""
Linear projection of when a progress record will reach its target.

The projection is a heuristic recomputed on every read; it is never stored.
"""
from datetime import datetime, timedelta
from typing import Optional, Sequence

DEFAULT_WINDOW = 5


def estimate_completion(
    history: Sequence,
    target: int,
    current: int,
    now: Optional[datetime] = None,
    window: int = DEFAULT_WINDOW,
) -> Optional[datetime]:
    """
    Project a completion timestamp from the tail of a progress history.

    Args:
        history: Ordered entries exposing `value` and `timestamp`
        target: Value at which the record completes
        current: Current value of the record
        now: Reference time for the projection (defaults to utcnow)
        window: Maximum number of trailing entries to use

    Returns:
        Projected completion time, or None when there is not enough signal
        (fewer than two entries, no elapsed time, or a non-positive slope).
    """
    if current >= target or len(history) < 2:
        return None

    recent = list(history)[-max(window, 2):]
    first, last = recent[0], recent[-1]

    elapsed = (last.timestamp - first.timestamp).total_seconds()
    gained = last.value - first.value
    if elapsed <= 0 or gained <= 0:
        return None

    per_second = gained / elapsed
    remaining_seconds = (target - current) / per_second

    return (now or datetime.utcnow()) + timedelta(seconds=remaining_seconds)
