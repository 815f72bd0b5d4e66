from datetime import datetime
from enum import Enum

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hackpulse.db.models.base import Base, JSONType, TimestampMixin, UTCDateTime


class CommitCategory(str, Enum):
    FEATURE = "feature"
    BUGFIX = "bugfix"
    REFACTOR = "refactor"
    DOCS = "docs"
    TEST = "test"
    CHORE = "chore"
    OTHER = "other"


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Commit(Base, TimestampMixin):
    __tablename__ = "commits"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    )
    repo_id: Mapped[int] = mapped_column(
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    sha: Mapped[str] = mapped_column(String(64), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    author_name: Mapped[str | None] = mapped_column(String(255))
    author_email: Mapped[str | None] = mapped_column(String(255))
    author_username: Mapped[str | None] = mapped_column(String(255))
    author_avatar: Mapped[str | None] = mapped_column(Text)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)

    # Diff stats
    additions: Mapped[int] = mapped_column(default=0)
    deletions: Mapped[int] = mapped_column(default=0)
    total_changes: Mapped[int] = mapped_column(default=0)
    files_changed: Mapped[int] = mapped_column(default=0)
    files: Mapped[list | None] = mapped_column(JSONType)

    # Quality report, filled in once classification completes
    ai_processed: Mapped[bool] = mapped_column(default=False)
    ai_quality_score: Mapped[int] = mapped_column(default=0)
    ai_is_spam: Mapped[bool] = mapped_column(default=False)
    ai_category: Mapped[CommitCategory] = mapped_column(
        String(20),
        default=CommitCategory.OTHER,
    )
    ai_complexity: Mapped[Complexity] = mapped_column(
        String(20),
        default=Complexity.MEDIUM,
    )
    ai_summary: Mapped[str | None] = mapped_column(Text)
    ai_feedback: Mapped[str | None] = mapped_column(Text)
    ai_suggestions: Mapped[list | None] = mapped_column(JSONType)
    ai_technologies: Mapped[list | None] = mapped_column(JSONType)

    # Score
    score_base: Mapped[int] = mapped_column(default=0)
    score_quality: Mapped[int] = mapped_column(default=0)
    score_timing: Mapped[int] = mapped_column(default=0)
    score_total: Mapped[int] = mapped_column(default=0)

    # Fixed at intake
    is_valid: Mapped[bool] = mapped_column(default=True)
    is_late_submission: Mapped[bool] = mapped_column(default=False)
    is_first_commit: Mapped[bool] = mapped_column(default=False)
    is_large_commit: Mapped[bool] = mapped_column(default=False)

    # Relationships
    repository = relationship("Repository", back_populates="commits")

    __table_args__ = (
        Index("idx_commits_sha", "sha", unique=True),
        Index("idx_commits_event_timestamp", "event_id", "timestamp"),
        Index("idx_commits_repo_timestamp", "repo_id", "timestamp"),
        Index("idx_commits_event_user", "event_id", "user_id"),
        Index("idx_commits_ai_processed", "ai_processed"),
    )

    @property
    def counts_toward_score(self) -> bool:
        """Late and spam commits are recorded but never scored."""
        return self.is_valid and not self.ai_is_spam

    def __repr__(self) -> str:
        return f"<Commit {self.sha[:7]} total={self.score_total}>"
