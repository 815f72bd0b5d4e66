from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hackpulse.db.models.base import Base, TimestampMixin, UTCDateTime, utcnow


class AchievementType(str, Enum):
    FIRST_COMMIT = "first_commit"
    SPEED_DEMON = "speed_demon"
    QUALITY_MASTER = "quality_master"
    NIGHT_OWL = "night_owl"
    EARLY_BIRD = "early_bird"
    CONSISTENCY_KING = "consistency_king"
    BUG_HUNTER = "bug_hunter"


class Score(Base, TimestampMixin):
    """Running aggregate of one participant's commits within one event."""

    __tablename__ = "scores"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    repo_id: Mapped[int] = mapped_column(
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False,
    )

    total_commits: Mapped[int] = mapped_column(default=0)
    valid_commits: Mapped[int] = mapped_column(default=0)
    total_score: Mapped[int] = mapped_column(default=0)

    # Breakdown
    base_score: Mapped[int] = mapped_column(default=0)
    quality_score: Mapped[int] = mapped_column(default=0)
    timing_score: Mapped[int] = mapped_column(default=0)
    bonus_score: Mapped[int] = mapped_column(default=0)

    # Stats
    average_quality: Mapped[float] = mapped_column(default=0.0)
    total_additions: Mapped[int] = mapped_column(default=0)
    total_deletions: Mapped[int] = mapped_column(default=0)
    total_files_changed: Mapped[int] = mapped_column(default=0)

    rank: Mapped[int | None] = mapped_column()
    percentile: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    is_locked: Mapped[bool] = mapped_column(default=False)
    last_updated: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    # Relationships
    event = relationship("Event", back_populates="scores")
    user = relationship("User", back_populates="scores")
    repository = relationship("Repository")
    achievements = relationship(
        "Achievement",
        back_populates="score",
        order_by="Achievement.earned_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_scores_event_user", "event_id", "user_id", unique=True),
        Index("idx_scores_event_total", "event_id", "total_score"),
        Index("idx_scores_event_rank", "event_id", "rank"),
    )

    @property
    def achievement_types(self) -> set[AchievementType]:
        return {AchievementType(a.achievement_type) for a in self.achievements}

    @property
    def average_score_per_commit(self) -> float:
        if self.valid_commits == 0:
            return 0.0
        return round(self.total_score / self.valid_commits, 2)

    def __repr__(self) -> str:
        return f"<Score event_id={self.event_id} user_id={self.user_id} rank={self.rank}>"


class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(primary_key=True)
    score_id: Mapped[int] = mapped_column(
        ForeignKey("scores.id", ondelete="CASCADE"),
        nullable=False,
    )
    achievement_type: Mapped[AchievementType] = mapped_column(String(50), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    # Relationships
    score = relationship("Score", back_populates="achievements")

    __table_args__ = (
        Index("idx_achievements_score_type", "score_id", "achievement_type", unique=True),
    )

    def __repr__(self) -> str:
        return f"<Achievement {self.achievement_type} score_id={self.score_id}>"
