from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hackpulse.db.models.base import Base, TimestampMixin, UTCDateTime


class Repository(Base, TimestampMixin):
    """A participant's GitHub repository registered for one event."""

    __tablename__ = "repositories"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    github_url: Mapped[str] = mapped_column(String(512), nullable=False)
    owner: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    language: Mapped[str | None] = mapped_column(String(100))
    default_branch: Mapped[str] = mapped_column(String(255), default="main")

    # Running totals, updated per commit
    total_commits: Mapped[int] = mapped_column(default=0)
    total_score: Mapped[int] = mapped_column(default=0)
    additions: Mapped[int] = mapped_column(default=0)
    deletions: Mapped[int] = mapped_column(default=0)
    files_changed: Mapped[int] = mapped_column(default=0)
    average_quality: Mapped[float] = mapped_column(default=0.0)
    last_commit_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    webhook_id: Mapped[str | None] = mapped_column(String(64))
    webhook_active: Mapped[bool] = mapped_column(default=False)
    is_active: Mapped[bool] = mapped_column(default=True)

    # Relationships
    event = relationship("Event", back_populates="repositories")
    user = relationship("User", back_populates="repositories")
    commits = relationship(
        "Commit",
        back_populates="repository",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_repositories_event_github_url", "event_id", "github_url", unique=True),
        Index("idx_repositories_event_user", "event_id", "user_id"),
        Index("idx_repositories_full_name", "full_name"),
    )

    @property
    def average_score(self) -> float:
        if self.total_commits == 0:
            return 0.0
        return round(self.total_score / self.total_commits, 2)

    def __repr__(self) -> str:
        return f"<Repository {self.full_name} event_id={self.event_id}>"
