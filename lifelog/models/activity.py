"""
Activity facts written by the moment, check-in and social flows.

The achievement engine only reads these tables; it never mutates them.
"""
import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from lifelog.db.base import Base


class ContentType(str, enum.Enum):
    TEXT = "text"
    PHOTO = "photo"
    VIDEO = "video"
    AUDIO = "audio"


class InteractionKind(str, enum.Enum):
    LIKE = "like"
    COMMENT = "comment"
    SHARE = "share"


class InteractionDirection(str, enum.Enum):
    RECEIVED = "received"
    GIVEN = "given"


class Moment(Base):
    __tablename__ = "moments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    profile_id = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    content_type = Column(Enum(ContentType), default=ContentType.TEXT, nullable=False)
    content = Column(Text, nullable=True)
    mood = Column(String, nullable=True)
    location_name = Column(String, nullable=True)
    city = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    profile = relationship("Profile", back_populates="moments")


class LocationVisit(Base):
    __tablename__ = "location_visits"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name = Column(String, nullable=False)
    city = Column(String, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    visited_at = Column(DateTime, default=datetime.utcnow)


class SocialInteraction(Base):
    __tablename__ = "social_interactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    moment_id = Column(Integer, ForeignKey("moments.id", ondelete="SET NULL"), nullable=True)
    kind = Column(Enum(InteractionKind), nullable=False)
    direction = Column(Enum(InteractionDirection), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
