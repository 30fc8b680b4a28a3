# lifelog/schemas/__init__.py
from lifelog.schemas.token import TokenPayload
from lifelog.schemas.activity import ActivitySnapshot
from lifelog.schemas.achievement import (
    AchievementCheckResult,
    AchievementDefinition,
    AchievementDefinitionCreate,
    AchievementDefinitionUpdate,
    AchievementEvent,
    AchievementFilters,
    BackfillResult,
    CategoryStats,
    CompletedAchievement,
    DefinitionStats,
    FailedDefinition,
    GrantRequest,
    Leaderboard,
    LeaderboardEntry,
    ProgressRecord,
    ProgressRecordDetail,
    ProgressRecordList,
    RetireResult,
    SetProgressRequest,
    StatusCounts,
    UserStats,
)
