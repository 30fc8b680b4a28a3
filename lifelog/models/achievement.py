from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from lifelog.core.config import settings
from lifelog.core.constants import (
    AchievementCategory,
    AchievementStatus,
    ConditionType,
    DefinitionStatus,
    Difficulty,
)
from lifelog.db.base import Base
from lifelog.services.completion_estimator import estimate_completion


class AchievementDefinition(Base):
    __tablename__ = "achievement_definitions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, index=True, nullable=False)
    description = Column(Text, default="")
    icon = Column(String, nullable=True)
    category = Column(Enum(AchievementCategory), nullable=False)
    difficulty = Column(Enum(Difficulty), default=Difficulty.BRONZE, nullable=False)
    points = Column(Integer, nullable=False)

    # Condition spec, immutable once published
    condition_type = Column(Enum(ConditionType), nullable=False)
    condition_field = Column(String, nullable=False)
    condition_target = Column(Integer, nullable=False)
    condition_params = Column(JSON, default=dict)
    trigger_events = Column(JSON, default=list)  # EventType values

    active_from = Column(DateTime, nullable=True)
    active_until = Column(DateTime, nullable=True)
    is_repeatable = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    is_hidden = Column(Boolean, default=False)
    sort_order = Column(Integer, default=0)
    status = Column(Enum(DefinitionStatus), default=DefinitionStatus.ACTIVE, nullable=False)

    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    progress_records = relationship(
        "ProgressRecord",
        back_populates="definition",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def is_within_window(self, at: datetime) -> bool:
        if self.active_from and at < self.active_from:
            return False
        if self.active_until and at > self.active_until:
            return False
        return True

    def window_closed(self, at: datetime) -> bool:
        return self.active_until is not None and at > self.active_until

    def accepts_event(self, event_type: str) -> bool:
        return event_type in (self.trigger_events or [])


class ProgressRecord(Base):
    __tablename__ = "progress_records"
    __table_args__ = (
        UniqueConstraint("user_id", "definition_id", name="uq_progress_user_definition"),
        Index("ix_progress_user_status", "user_id", "status"),
        Index("ix_progress_definition_status", "definition_id", "status"),
        Index("ix_progress_status_achieved_at", "status", "achieved_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    definition_id = Column(
        Integer,
        ForeignKey("achievement_definitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    status = Column(Enum(AchievementStatus), default=AchievementStatus.NOT_STARTED, nullable=False)

    current = Column(Integer, default=0, nullable=False)
    target = Column(Integer, nullable=False)  # copied from the definition at creation

    started_at = Column(DateTime, nullable=True)
    achieved_at = Column(DateTime, nullable=True)
    expired_at = Column(DateTime, nullable=True)
    last_activity_at = Column(DateTime, nullable=True)

    # Frozen when the record becomes achieved, never overwritten afterwards
    snapshot = Column(JSON, nullable=True)
    awarded_points = Column(Integer, nullable=True)

    notified = Column(Boolean, default=False, nullable=False)
    notified_at = Column(DateTime, nullable=True)

    is_manually_granted = Column(Boolean, default=False, nullable=False)
    granted_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    grant_reason = Column(String(200), nullable=True)

    times_achieved = Column(Integer, default=0, nullable=False)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    user = relationship("User", back_populates="progress_records", foreign_keys=[user_id])
    definition = relationship("AchievementDefinition", back_populates="progress_records")
    history = relationship(
        "ProgressHistoryEntry",
        back_populates="record",
        order_by="ProgressHistoryEntry.id",
        cascade="all, delete-orphan",
    )

    @property
    def percentage(self) -> float:
        if not self.target:
            return 0.0
        return max(0.0, min(100.0, (self.current or 0) / self.target * 100))

    @property
    def remaining(self) -> int:
        return max(0, self.target - (self.current or 0))

    @property
    def is_completed(self) -> bool:
        return self.status == AchievementStatus.ACHIEVED

    @property
    def estimated_completion(self) -> Optional[datetime]:
        if self.status != AchievementStatus.IN_PROGRESS:
            return None
        return estimate_completion(
            self.history, self.target, self.current, window=settings.ESTIMATION_WINDOW
        )


class ProgressHistoryEntry(Base):
    __tablename__ = "progress_history"
    __table_args__ = (
        Index("ix_history_dedupe", "record_id", "trigger_event", "related_entity_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    record_id = Column(
        Integer, ForeignKey("progress_records.id", ondelete="CASCADE"), nullable=False
    )
    value = Column(Integer, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    trigger_event = Column(String, nullable=False)
    related_entity_id = Column(String, nullable=True)
    related_entity_type = Column(String, nullable=True)

    record = relationship("ProgressRecord", back_populates="history")


class BackfillCheckpoint(Base):
    """Resume point of a bulk re-evaluation, keyed by definition."""

    __tablename__ = "backfill_checkpoints"

    definition_id = Column(
        Integer,
        ForeignKey("achievement_definitions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    last_user_id = Column(Integer, default=0, nullable=False)
    processed_count = Column(Integer, default=0, nullable=False)
    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
