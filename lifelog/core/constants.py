# lifelog/core/constants.py
import enum


class AchievementStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    ACHIEVED = "achieved"
    EXPIRED = "expired"


class DefinitionStatus(str, enum.Enum):
    ACTIVE = "active"
    RETIRED = "retired"


class ConditionType(str, enum.Enum):
    COUNT = "count"
    STREAK = "streak"
    MILESTONE = "milestone"
    CUSTOM = "custom"


class AchievementCategory(str, enum.Enum):
    MOMENTS = "moments"
    MEDIA = "media"
    EXPLORATION = "exploration"
    TIME = "time"
    SOCIAL = "social"
    PROFILES = "profiles"
    SPECIAL = "special"


class Difficulty(str, enum.Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    DIAMOND = "diamond"


class EventType(str, enum.Enum):
    MOMENT_CREATED = "moment_created"
    LOCATION_VISITED = "location_visited"
    SOCIAL_INTERACTION = "social_interaction"
    PROFILE_UPDATED = "profile_updated"
    MANUAL = "manual"  # administrative progress edits, never routed to definitions


class LeaderboardMetric(str, enum.Enum):
    TOTAL_POINTS = "total_points"
    ACHIEVEMENT_COUNT = "achievement_count"


class LeaderboardPeriod(str, enum.Enum):
    ALL_TIME = "all_time"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


# Days covered by each leaderboard period
PERIOD_DAYS = {
    LeaderboardPeriod.WEEK: 7,
    LeaderboardPeriod.MONTH: 30,
    LeaderboardPeriod.YEAR: 365,
}

# Event types a domain collaborator may submit
ROUTABLE_EVENTS = {
    EventType.MOMENT_CREATED,
    EventType.LOCATION_VISITED,
    EventType.SOCIAL_INTERACTION,
    EventType.PROFILE_UPDATED,
}

MAX_DEFINITION_NAME_LENGTH = 50
