# lifelog/models/__init__.py
from lifelog.models.user import User
from lifelog.models.profile import Profile, ProfileType
from lifelog.models.activity import (
    ContentType,
    InteractionDirection,
    InteractionKind,
    LocationVisit,
    Moment,
    SocialInteraction,
)
from lifelog.models.achievement import (
    AchievementDefinition,
    BackfillCheckpoint,
    ProgressHistoryEntry,
    ProgressRecord,
)
