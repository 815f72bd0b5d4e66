from hackpulse.api.schemas.ai import EventInsights, InsightsResponse, ReanalyzeResponse
from hackpulse.api.schemas.commit import BatchOutcome, CommitDetail, CommitList, IntakeOutcome
from hackpulse.api.schemas.event import (
    EventCreate,
    EventDetail,
    EventList,
    JoinRequest,
    JoinResponse,
    ParticipantInfo,
)
from hackpulse.api.schemas.leaderboard import (
    AchievementInfo,
    LeaderboardResponse,
    LeaderboardUserInfo,
    ScoreEntry,
)
from hackpulse.api.schemas.repository import CommitStats, RepositoryDetail, WebhookRegistration

__all__ = [
    "EventInsights",
    "InsightsResponse",
    "ReanalyzeResponse",
    "EventCreate",
    "EventDetail",
    "EventList",
    "JoinRequest",
    "JoinResponse",
    "ParticipantInfo",
    "RepositoryDetail",
    "CommitStats",
    "WebhookRegistration",
    "CommitDetail",
    "CommitList",
    "IntakeOutcome",
    "BatchOutcome",
    "ScoreEntry",
    "AchievementInfo",
    "LeaderboardUserInfo",
    "LeaderboardResponse",
]
