from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hackpulse.db.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255))
    github_username: Mapped[str | None] = mapped_column(String(255))
    avatar_url: Mapped[str | None] = mapped_column(Text)
    discord_id: Mapped[str | None] = mapped_column(String(64))
    total_events: Mapped[int] = mapped_column(default=0)

    # Relationships
    repositories = relationship("Repository", back_populates="user")
    scores = relationship("Score", back_populates="user")

    __table_args__ = (Index("idx_users_github_username", "github_username"),)

    def __repr__(self) -> str:
        return f"<User {self.username}>"
