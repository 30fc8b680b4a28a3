# lifelog/schemas/achievement.py
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from lifelog.core.constants import (
    AchievementCategory,
    AchievementStatus,
    ConditionType,
    DefinitionStatus,
    Difficulty,
    LeaderboardMetric,
    LeaderboardPeriod,
)


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC; convert aware values to match."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# Shared properties
class AchievementDefinitionBase(BaseModel):
    name: str
    description: str = ""
    icon: Optional[str] = None
    category: AchievementCategory
    difficulty: Difficulty = Difficulty.BRONZE
    points: int


# Properties to receive on definition creation. Range checks live in the
# catalog service so that callers get a ValidationException either way.
class AchievementDefinitionCreate(AchievementDefinitionBase):
    category: str
    difficulty: str = Difficulty.BRONZE.value
    condition_type: str
    condition_field: str
    condition_target: int
    condition_params: Dict[str, Any] = Field(default_factory=dict)
    trigger_events: Optional[List[str]] = None
    active_from: Optional[datetime] = None
    active_until: Optional[datetime] = None
    is_repeatable: bool = False
    is_active: bool = True
    is_hidden: bool = False
    sort_order: int = 0


# Properties to receive on definition update. Condition fields are accepted
# only so that an attempt to change them can be rejected explicitly.
class AchievementDefinitionUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    difficulty: Optional[str] = None
    points: Optional[int] = None
    is_active: Optional[bool] = None
    is_hidden: Optional[bool] = None
    sort_order: Optional[int] = None
    active_from: Optional[datetime] = None
    active_until: Optional[datetime] = None

    condition_type: Optional[str] = None
    condition_field: Optional[str] = None
    condition_target: Optional[int] = None


class AchievementDefinition(AchievementDefinitionBase):
    id: int
    condition_type: ConditionType
    condition_field: str
    condition_target: int
    condition_params: Optional[Dict[str, Any]] = None
    trigger_events: List[str] = []
    active_from: Optional[datetime] = None
    active_until: Optional[datetime] = None
    is_repeatable: bool
    is_active: bool
    is_hidden: bool
    sort_order: int
    status: DefinitionStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DefinitionSummary(BaseModel):
    id: int
    name: str
    description: str = ""
    icon: Optional[str] = None
    category: AchievementCategory
    difficulty: Difficulty
    points: int
    is_hidden: bool

    class Config:
        from_attributes = True


class ProgressHistoryEntry(BaseModel):
    value: int
    timestamp: datetime
    trigger_event: str
    related_entity_id: Optional[str] = None
    related_entity_type: Optional[str] = None

    class Config:
        from_attributes = True


class ProgressRecord(BaseModel):
    id: int
    user_id: int
    definition_id: int
    status: AchievementStatus
    current: int
    target: int
    percentage: float
    remaining: int
    is_completed: bool
    estimated_completion: Optional[datetime] = None
    started_at: Optional[datetime] = None
    achieved_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    snapshot: Optional[Dict[str, Any]] = None
    awarded_points: Optional[int] = None
    notified: bool
    is_manually_granted: bool
    grant_reason: Optional[str] = None
    times_achieved: int
    definition: Optional[DefinitionSummary] = None

    class Config:
        from_attributes = True


class ProgressRecordDetail(ProgressRecord):
    history: List[ProgressHistoryEntry] = []


class ProgressRecordList(BaseModel):
    items: List[ProgressRecord]
    total: int
    skip: int
    limit: int


class AchievementFilters(BaseModel):
    status: Optional[AchievementStatus] = None
    category: Optional[AchievementCategory] = None
    difficulty: Optional[Difficulty] = None
    skip: int = Field(0, ge=0)
    limit: int = Field(20, ge=1, le=100)
    sort_by: str = "achieved_at"
    sort_order: str = "desc"

    @field_validator("sort_by")
    @classmethod
    def validate_sort_by(cls, v: str) -> str:
        if v not in {"achieved_at", "percentage", "created_at"}:
            raise ValueError("sort_by must be one of achieved_at, percentage, created_at")
        return v

    @field_validator("sort_order")
    @classmethod
    def validate_sort_order(cls, v: str) -> str:
        if v not in {"asc", "desc"}:
            raise ValueError("sort_order must be asc or desc")
        return v


# --- events ------------------------------------------------------------------


class AchievementEvent(BaseModel):
    """A domain event reported by a collaborator after its own write."""

    event_type: str
    related_entity_id: Optional[str] = None
    related_entity_type: Optional[str] = None
    occurred_at: Optional[datetime] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("related_entity_id", mode="before")
    @classmethod
    def coerce_entity_id(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    @field_validator("occurred_at")
    @classmethod
    def normalize_occurred_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return naive_utc(v)


class CompletedAchievement(BaseModel):
    record_id: int
    definition_id: int
    name: str
    points: int


class FailedDefinition(BaseModel):
    definition_id: int
    error: str
    message: str


class AchievementCheckResult(BaseModel):
    updated_count: int = 0
    newly_completed: List[CompletedAchievement] = []
    failed: List[FailedDefinition] = []
    skipped: int = 0
    expired: int = 0

    @property
    def failed_ids(self) -> List[int]:
        return [f.definition_id for f in self.failed]


# --- administrative progress operations -------------------------------------


class GrantRequest(BaseModel):
    user_id: int
    definition_id: int
    reason: Optional[str] = Field(None, max_length=200)


class SetProgressRequest(BaseModel):
    current: int = Field(..., ge=0)


class BackfillResult(BaseModel):
    definition_id: int
    processed_count: int
    last_user_id: int
    newly_completed: int = 0
    completed: bool


class RetireResult(BaseModel):
    definition_id: int
    hard_deleted: bool
    expired_records: int


# --- stats -------------------------------------------------------------------


class StatusCounts(BaseModel):
    not_started: int = 0
    in_progress: int = 0
    achieved: int = 0
    expired: int = 0


class CategoryStats(BaseModel):
    total: int = 0
    achieved: int = 0
    points: int = 0


class UserStats(BaseModel):
    user_id: int
    total: int
    by_status: StatusCounts
    total_points: int
    completion_rate: float
    by_category: Dict[str, CategoryStats]
    recent: List[ProgressRecord] = []


class DefinitionStats(BaseModel):
    definition_id: int
    total: int
    by_status: StatusCounts
    achieved_count: int
    in_progress_count: int


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    username: Optional[str] = None
    total_points: int
    achievement_count: int
    last_achieved_at: Optional[datetime] = None


class Leaderboard(BaseModel):
    metric: LeaderboardMetric
    period: LeaderboardPeriod
    entries: List[LeaderboardEntry]
