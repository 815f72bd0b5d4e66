from datetime import datetime

from pydantic import BaseModel, Field

from hackpulse.api.schemas.repository import RepositoryDetail
from hackpulse.db.models.event import EventStatus


class EventCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    max_participants: int = Field(..., ge=1, le=1000)
    duration_hours: int = Field(..., ge=1, le=720)
    created_by_id: int | None = None
    min_commits: int = Field(1, ge=0)
    allowed_languages: list[str] = Field(default_factory=list)
    require_tests: bool = False
    is_public: bool = True
    discord_channel_id: str | None = None


class ParticipantInfo(BaseModel):
    user_id: int
    repo_id: int | None
    joined_at: datetime

    model_config = {"from_attributes": True}


class EventDetail(BaseModel):
    id: int
    name: str
    description: str | None
    status: EventStatus
    max_participants: int
    current_participants: int
    remaining_slots: int
    duration_hours: int
    start_time: datetime | None
    end_time: datetime | None
    total_commits: int
    min_commits: int
    allowed_languages: list[str] | None
    require_tests: bool
    is_public: bool
    participants: list[ParticipantInfo]
    created_at: datetime

    model_config = {"from_attributes": True}


class EventList(BaseModel):
    events: list[EventDetail]
    total: int
    page: int
    page_size: int


class JoinRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=255)
    github_url: str = Field(..., min_length=1, max_length=512)
    display_name: str | None = None
    email: str | None = None
    github_username: str | None = None
    discord_id: str | None = None


class JoinResponse(BaseModel):
    event: EventDetail
    repository: RepositoryDetail
    score_id: int
