from datetime import datetime

from pydantic import BaseModel

from hackpulse.db.models.commit import CommitCategory, Complexity
from hackpulse.services.commit_service import IntakeStatus


class CommitDetail(BaseModel):
    id: int
    event_id: int
    repo_id: int
    user_id: int
    sha: str
    message: str
    author_name: str | None
    author_username: str | None
    timestamp: datetime
    url: str
    additions: int
    deletions: int
    files_changed: int
    is_valid: bool
    is_late_submission: bool
    is_first_commit: bool
    is_large_commit: bool
    ai_processed: bool
    ai_quality_score: int
    ai_is_spam: bool
    ai_category: CommitCategory
    ai_complexity: Complexity
    ai_summary: str | None
    score_base: int
    score_quality: int
    score_timing: int
    score_total: int

    model_config = {"from_attributes": True}


class CommitList(BaseModel):
    commits: list[CommitDetail]
    total: int
    page: int
    page_size: int


class IntakeOutcome(BaseModel):
    sha: str
    status: IntakeStatus
    reason: str | None = None
    commit_id: int | None = None
    score: int | None = None
    is_valid: bool | None = None
    notes: list[str] = []

    model_config = {"from_attributes": True}


class BatchOutcome(BaseModel):
    processed: int
    skipped: int
    errors: list[dict]
    results: list[IntakeOutcome]

    model_config = {"from_attributes": True}
