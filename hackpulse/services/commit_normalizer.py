"""Turn inbound GitHub commit shapes into one canonical payload and decide
how the intake pipeline should treat it relative to the event window."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from hackpulse.db.models.base import as_utc
from hackpulse.db.models.event import Event

TEST_FILE_MARKERS = ("test", "spec", ".test.", ".spec.")


class CommitAuthor(BaseModel):
    name: str | None = None
    email: str | None = None
    username: str | None = None
    avatar: str | None = None


class DiffStats(BaseModel):
    additions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    files_changed: int = Field(default=0, ge=0)


class CommitFile(BaseModel):
    filename: str
    status: str | None = None
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: str | None = None


class CommitPayload(BaseModel):
    sha: str = Field(..., min_length=4, max_length=64)
    message: str = ""
    timestamp: datetime
    url: str = ""
    author: CommitAuthor = Field(default_factory=CommitAuthor)
    stats: DiffStats = Field(default_factory=DiffStats)
    files: list[CommitFile] = Field(default_factory=list)

    @field_validator("timestamp")
    @classmethod
    def timestamp_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def total_changes(self) -> int:
        return self.stats.total or (self.stats.additions + self.stats.deletions)

    def with_details(self, details: "CommitPayload") -> "CommitPayload":
        """Prefer the API's stats/files, keep the inbound identity."""
        return self.model_copy(
            update={
                "message": details.message or self.message,
                "url": details.url or self.url,
                "author": details.author,
                "stats": details.stats,
                "files": details.files,
            }
        )


def from_webhook(data: dict) -> CommitPayload:
    """Build a payload from one entry of a push event's ``commits[]``."""
    author = data.get("author")
    if not isinstance(author, dict):
        author = {}
    touched = (
        len(data.get("added") or [])
        + len(data.get("removed") or [])
        + len(data.get("modified") or [])
    )
    return CommitPayload(
        sha=data["id"],
        message=data.get("message") or "",
        timestamp=data["timestamp"],
        url=data.get("url") or "",
        author=CommitAuthor(
            name=author.get("name"),
            email=author.get("email"),
            username=author.get("username"),
        ),
        stats=DiffStats(files_changed=touched),
    )


def from_github_listing(data: dict) -> CommitPayload:
    """Build a payload from an item of ``GET /repos/{o}/{r}/commits``."""
    commit = data.get("commit") or {}
    git_author = commit.get("author") or {}
    account = data.get("author") or {}
    return CommitPayload(
        sha=data["sha"],
        message=commit.get("message") or "",
        timestamp=git_author["date"],
        url=data.get("html_url") or "",
        author=CommitAuthor(
            name=git_author.get("name"),
            email=git_author.get("email"),
            username=account.get("login"),
            avatar=account.get("avatar_url"),
        ),
    )


def from_github_detail(data: dict) -> CommitPayload:
    """Build a payload from ``GET /repos/{o}/{r}/commits/{sha}``."""
    payload = from_github_listing(data)
    stats = data.get("stats") or {}
    files = data.get("files") or []
    return payload.model_copy(
        update={
            "stats": DiffStats(
                additions=stats.get("additions") or 0,
                deletions=stats.get("deletions") or 0,
                total=stats.get("total") or 0,
                files_changed=len(files),
            ),
            "files": [
                CommitFile(
                    filename=f.get("filename") or "",
                    status=f.get("status"),
                    additions=f.get("additions") or 0,
                    deletions=f.get("deletions") or 0,
                    changes=f.get("changes") or 0,
                    patch=f.get("patch"),
                )
                for f in files
            ],
        }
    )


class WindowCheck(str, Enum):
    ACCEPT = "accept"
    BEFORE_START = "before_start"
    LATE = "late"


def evaluate_window(timestamp: datetime, event: Event) -> WindowCheck:
    if event.start_time is None or as_utc(timestamp) < event.start_time:
        return WindowCheck.BEFORE_START
    if event.end_time is not None and as_utc(timestamp) > event.end_time:
        return WindowCheck.LATE
    return WindowCheck.ACCEPT


@dataclass(frozen=True)
class CommitFlags:
    is_late_submission: bool = False
    is_first_commit: bool = False
    is_large_commit: bool = False

    @property
    def is_valid(self) -> bool:
        return not self.is_late_submission


def build_flags(
    payload: CommitPayload,
    window: WindowCheck,
    prior_commit_count: int,
    large_commit_threshold: int,
) -> CommitFlags:
    # prior_commit_count is read before insert; exact only under the
    # per-event intake lock.
    return CommitFlags(
        is_late_submission=window == WindowCheck.LATE,
        is_first_commit=prior_commit_count == 0,
        is_large_commit=payload.total_changes > large_commit_threshold,
    )


def validate_commit_rules(files: list[CommitFile], event: Event) -> list[str]:
    """Advisory rule check against the event's language/test requirements."""
    violations = []

    if event.allowed_languages:
        extensions = {f.filename.rsplit(".", 1)[-1] for f in files if "." in f.filename}
        if not extensions & set(event.allowed_languages):
            violations.append("No allowed language files in commit")

    if event.require_tests:
        if not any(marker in f.filename for f in files for marker in TEST_FILE_MARKERS):
            violations.append("No test files found")

    return violations
