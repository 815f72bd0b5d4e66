from datetime import datetime

from pydantic import BaseModel


class RepositoryDetail(BaseModel):
    id: int
    event_id: int
    user_id: int
    github_url: str
    owner: str
    name: str
    full_name: str
    default_branch: str
    description: str | None = None
    language: str | None = None
    total_commits: int
    total_score: int
    additions: int
    deletions: int
    files_changed: int
    average_quality: float
    last_commit_at: datetime | None
    webhook_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class CommitStats(BaseModel):
    repo_id: int
    full_name: str
    total_commits: int
    late_commits: int
    total_additions: int
    total_deletions: int
    total_files_changed: int
    average_score: float
    average_quality: float


class WebhookRegistration(BaseModel):
    success: bool
    webhook_id: str | None = None
    url: str | None = None
    error: str | None = None
