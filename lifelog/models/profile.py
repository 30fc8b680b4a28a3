import enum
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from lifelog.db.base import Base


class ProfileType(str, enum.Enum):
    SELF = "self"
    CHILD = "child"
    PET = "pet"
    TRIP = "trip"
    OTHER = "other"


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name = Column(String, nullable=False)
    profile_type = Column(Enum(ProfileType), default=ProfileType.SELF, nullable=False)
    birthday = Column(Date, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    owner = relationship("User", back_populates="profiles")
    moments = relationship("Moment", back_populates="profile")
