from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from lifelog.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    is_active = Column(Boolean(), default=True)
    is_admin = Column(Boolean(), default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Gamification stats
    level = Column(Integer, default=1, nullable=False)
    total_points = Column(Integer, default=0, nullable=False)

    # Relationships
    profiles = relationship("Profile", back_populates="owner", cascade="all, delete-orphan")
    progress_records = relationship(
        "ProgressRecord",
        back_populates="user",
        foreign_keys="ProgressRecord.user_id",
        cascade="all, delete-orphan",
    )
