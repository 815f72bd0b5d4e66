from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hackpulse.db.models.base import (
    Base,
    JSONType,
    TimestampMixin,
    UTCDateTime,
    as_utc,
    utcnow,
)


class EventStatus(str, Enum):
    WAITING = "waiting"
    RUNNING = "running"
    FINISHED = "finished"
    CANCELLED = "cancelled"


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
    )
    status: Mapped[EventStatus] = mapped_column(
        String(50),
        default=EventStatus.WAITING,
        nullable=False,
    )
    max_participants: Mapped[int] = mapped_column(nullable=False)
    current_participants: Mapped[int] = mapped_column(default=0)
    duration_hours: Mapped[int] = mapped_column(nullable=False)

    # Set once, on the waiting -> running transition
    start_time: Mapped[datetime | None] = mapped_column(UTCDateTime)
    end_time: Mapped[datetime | None] = mapped_column(UTCDateTime)

    total_commits: Mapped[int] = mapped_column(default=0)

    # Rules
    min_commits: Mapped[int] = mapped_column(default=1)
    allowed_languages: Mapped[list | None] = mapped_column(JSONType)
    require_tests: Mapped[bool] = mapped_column(default=False)

    is_public: Mapped[bool] = mapped_column(default=True)
    discord_channel_id: Mapped[str | None] = mapped_column(String(64))

    # Relationships
    participants = relationship(
        "EventParticipant",
        back_populates="event",
        order_by="EventParticipant.joined_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )
    repositories = relationship(
        "Repository",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    scores = relationship(
        "Score",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_events_status", "status"),
        Index("idx_events_status_end_time", "status", "end_time"),
        CheckConstraint("current_participants <= max_participants", name="ck_events_capacity"),
    )

    @property
    def remaining_slots(self) -> int:
        return self.max_participants - self.current_participants

    @property
    def is_full(self) -> bool:
        return self.current_participants >= self.max_participants

    @property
    def is_active(self) -> bool:
        return self.status == EventStatus.RUNNING

    @property
    def can_join(self) -> bool:
        return self.status == EventStatus.WAITING and not self.is_full

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.end_time is None:
            return False
        return (as_utc(now) or utcnow()) >= self.end_time

    def __repr__(self) -> str:
        return f"<Event {self.name} status={self.status}>"


class EventParticipant(Base):
    __tablename__ = "event_participants"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    repo_id: Mapped[int | None] = mapped_column(
        ForeignKey("repositories.id", ondelete="SET NULL"),
    )
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    # Relationships
    event = relationship("Event", back_populates="participants")

    __table_args__ = (
        Index("idx_event_participants_event_user", "event_id", "user_id", unique=True),
    )

    def __repr__(self) -> str:
        return f"<EventParticipant event_id={self.event_id} user_id={self.user_id}>"
