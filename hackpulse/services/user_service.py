import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hackpulse.core.exceptions import NotFoundError
from hackpulse.db.models.user import User

logger = structlog.get_logger()


class UserService:
    """Service for participant accounts."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def get_by_username(self, username: str) -> User | None:
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def get_or_create(
        self,
        username: str,
        display_name: str | None = None,
        email: str | None = None,
        github_username: str | None = None,
        discord_id: str | None = None,
    ) -> User:
        """Find a user by username, creating the account on first sight."""
        user = await self.get_by_username(username)
        if user:
            return user

        user = User(
            username=username,
            display_name=display_name or username,
            email=email,
            github_username=github_username,
            discord_id=discord_id,
            total_events=0,
        )
        self.db.add(user)
        await self.db.flush()
        logger.info("User created", user_id=user.id, username=username)
        return user
