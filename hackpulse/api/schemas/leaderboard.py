from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from hackpulse.db.models.score import AchievementType


class LeaderboardUserInfo(BaseModel):
    id: int
    username: str
    display_name: str | None
    avatar_url: str | None

    model_config = {"from_attributes": True}


class LeaderboardRepositoryInfo(BaseModel):
    id: int
    full_name: str
    github_url: str

    model_config = {"from_attributes": True}


class AchievementInfo(BaseModel):
    achievement_type: AchievementType
    earned_at: datetime

    model_config = {"from_attributes": True}


class ScoreEntry(BaseModel):
    rank: int | None
    percentile: Decimal | None
    user: LeaderboardUserInfo
    repository: LeaderboardRepositoryInfo | None
    total_score: int
    base_score: int
    quality_score: int
    timing_score: int
    bonus_score: int
    total_commits: int
    valid_commits: int
    average_quality: float
    total_additions: int
    total_deletions: int
    achievements: list[AchievementInfo]
    is_locked: bool
    last_updated: datetime

    model_config = {"from_attributes": True}


class LeaderboardResponse(BaseModel):
    event_id: int
    entries: list[ScoreEntry]
    total: int
    is_final: bool
