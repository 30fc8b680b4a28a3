# lifelog/services/condition_evaluator.py
"""
Pure condition strategies.

Each condition type maps to one strategy with the same shape:
(spec, snapshot, prior) -> new value. Fields are resolved through per-type
tables so new goals only need a table entry, not a change to the processor.
"""
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional

from lifelog.core.config import settings
from lifelog.core.constants import ConditionType, EventType
from lifelog.core.exceptions import ConditionEvaluationException
from lifelog.schemas.activity import ActivitySnapshot


class ConditionSpec(NamedTuple):
    type: str
    field: str
    target: int
    params: Dict[str, Any] = {}

    @classmethod
    def from_definition(cls, definition) -> "ConditionSpec":
        return cls(
            type=definition.condition_type,
            field=definition.condition_field,
            target=definition.condition_target,
            params=definition.condition_params or {},
        )


class Evaluation(NamedTuple):
    new_value: int
    is_complete: bool


def _value(enum_or_str) -> str:
    return getattr(enum_or_str, "value", enum_or_str)


# --- count -------------------------------------------------------------------


def _count_content(content_type: str) -> Callable[[ActivitySnapshot], int]:
    return lambda s: sum(1 for m in s.moments if _value(m.content_type) == content_type)


def _count_interactions(kind: str, direction: str) -> Callable[[ActivitySnapshot], int]:
    return lambda s: sum(
        1
        for i in s.interactions
        if _value(i.kind) == kind and _value(i.direction) == direction
    )


def _place_names(snapshot: ActivitySnapshot) -> List[str]:
    names = [m.location_name for m in snapshot.moments if m.location_name]
    names.extend(v.name for v in snapshot.visits)
    return names


def _cities(snapshot: ActivitySnapshot) -> List[str]:
    cities = [m.city for m in snapshot.moments if m.city]
    cities.extend(v.city for v in snapshot.visits if v.city)
    return cities


def _distinct(values: Iterable[str]) -> int:
    return len({v.strip().lower() for v in values if v and v.strip()})


COUNT_FIELDS: Dict[str, Callable[[ActivitySnapshot], int]] = {
    "moments": lambda s: len(s.moments),
    "texts": _count_content("text"),
    "photos": _count_content("photo"),
    "videos": _count_content("video"),
    "audios": _count_content("audio"),
    "locations": lambda s: len(_place_names(s)),
    "unique_locations": lambda s: _distinct(_place_names(s)),
    "unique_cities": lambda s: _distinct(_cities(s)),
    "likes_received": _count_interactions("like", "received"),
    "comments_made": _count_interactions("comment", "given"),
    "shares_given": _count_interactions("share", "given"),
    "profiles": lambda s: len(s.profiles),
}


# --- streak ------------------------------------------------------------------


def current_streak(timestamps: Iterable[datetime], until: datetime) -> int:
    """
    Length of the consecutive-day run ending on `until`'s day.

    A day with no activity yet does not break a run that ended yesterday;
    any larger gap does.
    """
    days = {ts.date() for ts in timestamps if ts.date() <= until.date()}
    anchor = until.date()
    if anchor not in days:
        anchor -= timedelta(days=1)

    run = 0
    while anchor in days:
        run += 1
        anchor -= timedelta(days=1)
    return run


STREAK_FIELDS: Dict[str, Callable[[ActivitySnapshot], List[datetime]]] = {
    "daily_moments": lambda s: [m.created_at for m in s.moments],
}


# --- milestone (date/time predicates) ----------------------------------------


def _same_day_of_year(a: date, b: date) -> bool:
    return (a.month, a.day) == (b.month, b.day)


MilestonePredicate = Callable[[datetime, ActivitySnapshot, Dict[str, Any]], bool]

MILESTONE_PREDICATES: Dict[str, MilestonePredicate] = {
    "early_morning_moments": lambda at, s, p: at.hour < p.get(
        "hour", settings.EARLY_BIRD_HOUR
    ),
    "late_night_moments": lambda at, s, p: at.hour >= p.get(
        "hour", settings.NIGHT_OWL_HOUR
    ),
    "birthday_moments": lambda at, s, p: any(
        pr.birthday and _same_day_of_year(at.date(), pr.birthday) for pr in s.profiles
    ),
    "new_year_moments": lambda at, s, p: at.month == 1 and at.day == 1,
    "anniversary_moments": lambda at, s, p: bool(
        s.account_created_at
        and at.year > s.account_created_at.year
        and _same_day_of_year(at.date(), s.account_created_at.date())
    ),
}



def _hour_param(value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 23:
        raise ValueError(f"hour must be an integer from 0 to 23, got {value!r}")


# Parameters a field reads from condition_params, with their checks
PARAM_CHECKS: Dict[str, Dict[str, Callable[[Any], None]]] = {
    "early_morning_moments": {"hour": _hour_param},
    "late_night_moments": {"hour": _hour_param},
}

# --- custom ------------------------------------------------------------------

CUSTOM_PREDICATES: Dict[str, Callable[[ActivitySnapshot, Dict[str, Any]], int]] = {
    "mood_variety": lambda s, p: _distinct(m.mood for m in s.moments if m.mood),
    "media_variety": lambda s, p: len({_value(m.content_type) for m in s.moments}),
    "profile_variety": lambda s, p: len({_value(pr.profile_type) for pr in s.profiles}),
    "weekend_moments": lambda s, p: sum(1 for m in s.moments if m.created_at.weekday() >= 5),
}


# --- strategies --------------------------------------------------------------


def _lookup(table: Dict[str, Any], spec: ConditionSpec):
    try:
        return table[spec.field]
    except KeyError:
        raise ConditionEvaluationException(
            f"Unsupported field '{spec.field}' for {_value(spec.type)} condition",
            details={"type": _value(spec.type), "field": spec.field},
        )


def _evaluate_count(spec: ConditionSpec, snapshot: ActivitySnapshot, prior: int) -> int:
    return _lookup(COUNT_FIELDS, spec)(snapshot)


def _evaluate_streak(spec: ConditionSpec, snapshot: ActivitySnapshot, prior: int) -> int:
    timestamps = _lookup(STREAK_FIELDS, spec)(snapshot)
    return current_streak(timestamps, snapshot.reference_time)


def _evaluate_milestone(spec: ConditionSpec, snapshot: ActivitySnapshot, prior: int) -> int:
    predicate = _lookup(MILESTONE_PREDICATES, spec)
    if snapshot.event_at is not None:
        candidates = [snapshot.event_at]
    else:
        # No triggering event: any recorded moment may satisfy the predicate
        candidates = [m.created_at for m in snapshot.moments]

    if any(predicate(at, snapshot, spec.params) for at in candidates):
        return max(prior, 1)
    return prior


def _evaluate_custom(spec: ConditionSpec, snapshot: ActivitySnapshot, prior: int) -> int:
    return int(_lookup(CUSTOM_PREDICATES, spec)(snapshot, spec.params))


STRATEGIES: Dict[str, Callable[[ConditionSpec, ActivitySnapshot, int], int]] = {
    ConditionType.COUNT.value: _evaluate_count,
    ConditionType.STREAK.value: _evaluate_streak,
    ConditionType.MILESTONE.value: _evaluate_milestone,
    ConditionType.CUSTOM.value: _evaluate_custom,
}


def evaluate(spec: ConditionSpec, snapshot: ActivitySnapshot, prior: int = 0) -> Evaluation:
    """
    Evaluate one condition against a user's activity.

    Raises:
        ConditionEvaluationException: unknown condition type or field
    """
    strategy = STRATEGIES.get(_value(spec.type))
    if strategy is None:
        raise ConditionEvaluationException(
            f"Unsupported condition type '{_value(spec.type)}'",
            details={"type": _value(spec.type), "field": spec.field},
        )

    new_value = max(0, int(strategy(spec, snapshot, prior)))
    return Evaluation(new_value=new_value, is_complete=new_value >= spec.target)


def validate_params(field: str, params: Optional[Dict[str, Any]]) -> None:
    """Raise ValueError if a parameter the field reads has an unusable value."""
    checks = PARAM_CHECKS.get(field, {})
    for name, value in (params or {}).items():
        if name in checks:
            checks[name](value)


def supports(condition_type: str, field: str) -> bool:
    """Whether an evaluator exists for this type/field combination."""
    tables = {
        ConditionType.COUNT.value: COUNT_FIELDS,
        ConditionType.STREAK.value: STREAK_FIELDS,
        ConditionType.MILESTONE.value: MILESTONE_PREDICATES,
        ConditionType.CUSTOM.value: CUSTOM_PREDICATES,
    }
    return field in tables.get(_value(condition_type), {})


_MOMENT = [EventType.MOMENT_CREATED.value]
_PLACES = [EventType.MOMENT_CREATED.value, EventType.LOCATION_VISITED.value]
_SOCIAL = [EventType.SOCIAL_INTERACTION.value]
_PROFILE = [EventType.PROFILE_UPDATED.value]

# Event types that can move each known field
FIELD_TRIGGERS: Dict[str, List[str]] = {
    "moments": _MOMENT,
    "texts": _MOMENT,
    "photos": _MOMENT,
    "videos": _MOMENT,
    "audios": _MOMENT,
    "daily_moments": _MOMENT,
    "early_morning_moments": _MOMENT,
    "late_night_moments": _MOMENT,
    "birthday_moments": _MOMENT,
    "new_year_moments": _MOMENT,
    "anniversary_moments": _MOMENT,
    "mood_variety": _MOMENT,
    "media_variety": _MOMENT,
    "weekend_moments": _MOMENT,
    "locations": _PLACES,
    "unique_locations": _PLACES,
    "unique_cities": _PLACES,
    "likes_received": _SOCIAL,
    "comments_made": _SOCIAL,
    "shares_given": _SOCIAL,
    "profiles": _PROFILE,
    "profile_variety": _PROFILE,
}


def default_triggers(field: str) -> Optional[List[str]]:
    triggers = FIELD_TRIGGERS.get(field)
    return list(triggers) if triggers else None
