from hackpulse.db.models.base import Base
from hackpulse.db.models.commit import Commit
from hackpulse.db.models.event import Event, EventParticipant
from hackpulse.db.models.repository import Repository
from hackpulse.db.models.score import Achievement, Score
from hackpulse.db.models.user import User

__all__ = [
    "Base",
    "User",
    "Event",
    "EventParticipant",
    "Repository",
    "Commit",
    "Score",
    "Achievement",
]
