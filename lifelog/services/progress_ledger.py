# lifelog/services/progress_ledger.py
"""
State machine for a single progress record.

    not_started --(value > 0)--------------------> in_progress
    not_started/in_progress --(value >= target,
                               inside window)----> achieved
    not_started/in_progress --(window closed)----> expired
    achieved --(reset, repeatable only)----------> not_started
    expired --(administrative reset)-------------> not_started
    any --(manual grant)-------------------------> achieved

These functions only mutate the ORM objects; the caller owns the
transaction. `percentage` is derived from current/target on read.
"""
import enum
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from lifelog import models
from lifelog.core.constants import AchievementStatus, EventType
from lifelog.core.exceptions import ConflictException, ProcessingException, ValidationException

logger = logging.getLogger(__name__)

CLOSED_STATUSES = (AchievementStatus.ACHIEVED, AchievementStatus.EXPIRED)


class Transition(str, enum.Enum):
    NONE = "none"
    STARTED = "started"
    ADVANCED = "advanced"
    ACHIEVED = "achieved"
    EXPIRED = "expired"


def _last_timestamp(record: models.ProgressRecord) -> Optional[datetime]:
    return record.history[-1].timestamp if record.history else None


def _append_history(
    record: models.ProgressRecord,
    value: int,
    trigger: str,
    at: datetime,
    related_id: Optional[Any] = None,
    related_type: Optional[str] = None,
) -> datetime:
    # Backdated events are recorded at the latest known time
    last = _last_timestamp(record)
    timestamp = max(at, last) if last else at

    record.history.append(
        models.ProgressHistoryEntry(
            value=value,
            timestamp=timestamp,
            trigger_event=getattr(trigger, "value", trigger),
            related_entity_id=str(related_id) if related_id is not None else None,
            related_entity_type=related_type,
        )
    )
    record.last_activity_at = timestamp
    return timestamp


def check_invariants(record: models.ProgressRecord) -> None:
    """Raise if the record is in a state no transition can produce."""
    achieved = record.status == AchievementStatus.ACHIEVED
    if achieved != (record.achieved_at is not None):
        raise ProcessingException(
            f"Progress record {record.id}: achieved_at must be set iff status is achieved",
            details={"status": getattr(record.status, "value", record.status)},
        )
    if record.current < 0:
        raise ProcessingException(f"Progress record {record.id}: negative progress")


def apply_progress(
    record: models.ProgressRecord,
    definition: models.AchievementDefinition,
    value: int,
    trigger: str,
    related_id: Optional[Any] = None,
    related_type: Optional[str] = None,
    at: Optional[datetime] = None,
) -> Transition:
    """
    Record a newly evaluated progress value and move the state machine.

    Exactly one history entry is appended unless the record expires instead.

    Raises:
        ConflictException: the record is already achieved or expired
    """
    at = at or datetime.utcnow()

    if record.status in CLOSED_STATUSES:
        raise ConflictException(
            f"Progress record {record.id} is {record.status.value} and cannot change",
            details={"record_id": record.id},
        )

    if definition.window_closed(at):
        expire(record, at)
        return Transition.EXPIRED

    value = max(0, int(value))
    previous_status = record.status
    previous_value = record.current or 0

    _append_history(record, value, trigger, at, related_id, related_type)
    record.current = value

    if value >= record.target and definition.is_within_window(at):
        record.status = AchievementStatus.ACHIEVED
        record.achieved_at = at
        record.started_at = record.started_at or at
        record.notified = False
        record.times_achieved = (record.times_achieved or 0) + 1
        transition = Transition.ACHIEVED
    elif value > 0:
        record.status = AchievementStatus.IN_PROGRESS
        if previous_status == AchievementStatus.NOT_STARTED:
            record.started_at = at
            transition = Transition.STARTED
        else:
            transition = Transition.ADVANCED if value != previous_value else Transition.NONE
    else:
        transition = Transition.ADVANCED if value != previous_value else Transition.NONE

    check_invariants(record)
    return transition


def expire(record: models.ProgressRecord, at: Optional[datetime] = None) -> None:
    if record.status == AchievementStatus.ACHIEVED:
        raise ConflictException(f"Progress record {record.id} is achieved and cannot expire")

    record.status = AchievementStatus.EXPIRED
    record.expired_at = at or datetime.utcnow()
    check_invariants(record)


def grant(
    record: models.ProgressRecord,
    admin_id: int,
    reason: Optional[str],
    at: Optional[datetime] = None,
) -> None:
    """Force a record into `achieved`, bypassing the evaluator."""
    if record.status == AchievementStatus.ACHIEVED:
        raise ConflictException(
            f"Progress record {record.id} is already achieved",
            details={"record_id": record.id},
        )
    at = at or datetime.utcnow()

    _append_history(record, record.target, EventType.MANUAL, at, admin_id, "User")
    record.current = record.target
    record.status = AchievementStatus.ACHIEVED
    record.achieved_at = at
    record.started_at = record.started_at or at
    record.expired_at = None
    record.notified = False
    record.times_achieved = (record.times_achieved or 0) + 1
    record.is_manually_granted = True
    record.granted_by_id = admin_id
    record.grant_reason = reason
    check_invariants(record)


def reset(record: models.ProgressRecord, definition: models.AchievementDefinition) -> None:
    """
    Return a record to `not_started` for a new earning cycle.

    Achieved records may only be reset when the definition is repeatable.
    """
    if record.status == AchievementStatus.ACHIEVED and not definition.is_repeatable:
        raise ValidationException(
            f"Achievement '{definition.name}' is not repeatable",
            details={"record_id": record.id, "definition_id": definition.id},
        )
    if record.status not in CLOSED_STATUSES:
        raise ValidationException(
            f"Only achieved or expired records can be reset (record {record.id} "
            f"is {record.status.value})"
        )

    record.status = AchievementStatus.NOT_STARTED
    record.current = 0
    record.started_at = None
    record.achieved_at = None
    record.expired_at = None
    record.last_activity_at = None
    record.history.clear()
    record.snapshot = None
    record.awarded_points = None
    record.notified = False
    record.notified_at = None
    record.is_manually_granted = False
    record.granted_by_id = None
    record.grant_reason = None
    check_invariants(record)


def freeze_snapshot(
    record: models.ProgressRecord,
    definition: models.AchievementDefinition,
    user: models.User,
    at: Optional[datetime] = None,
) -> bool:
    """
    Capture the reward and user standing at the moment of achievement.

    Returns False when the current cycle already has a snapshot.
    """
    if record.snapshot is not None:
        return False

    snapshot: Dict[str, Any] = {
        "name": definition.name,
        "description": definition.description,
        "icon": definition.icon,
        "points": definition.points,
        "difficulty": definition.difficulty.value,
        "category": definition.category.value,
        "user_level": user.level,
        "user_total_points": user.total_points,
        "captured_at": (at or datetime.utcnow()).isoformat(),
    }
    record.snapshot = snapshot
    record.awarded_points = definition.points
    return True
