# lifelog/schemas/activity.py
from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


def _plain_value(v: Any) -> Any:
    # ORM enum columns hand back enum members; facts carry their plain values
    return getattr(v, "value", v)


class MomentFact(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    content_type: str
    mood: Optional[str] = None
    location_name: Optional[str] = None
    city: Optional[str] = None
    profile_id: Optional[int] = None

    @field_validator("content_type", mode="before")
    @classmethod
    def plain_content_type(cls, v: Any) -> Any:
        return _plain_value(v)


class VisitFact(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    city: Optional[str] = None
    visited_at: datetime


class InteractionFact(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str
    direction: str
    created_at: datetime

    @field_validator("kind", "direction", mode="before")
    @classmethod
    def plain_enum(cls, v: Any) -> Any:
        return _plain_value(v)


class ProfileFact(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    profile_type: str
    birthday: Optional[date] = None

    @field_validator("profile_type", mode="before")
    @classmethod
    def plain_profile_type(cls, v: Any) -> Any:
        return _plain_value(v)


class ActivitySnapshot(BaseModel):
    """Everything the condition evaluator may look at for one user.

    `event_at` is the time of the triggering event; it is None when a record
    is re-evaluated outside of an event (catalog backfill).
    """

    user_id: int
    event_at: Optional[datetime] = None
    account_created_at: Optional[datetime] = None
    moments: List[MomentFact] = []
    visits: List[VisitFact] = []
    interactions: List[InteractionFact] = []
    profiles: List[ProfileFact] = []

    @property
    def reference_time(self) -> datetime:
        return self.event_at or datetime.utcnow()
