from datetime import timedelta

import httpx
import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hackpulse.core.config import Settings, settings as default_settings
from hackpulse.core.exceptions import (
    HackPulseError,
    JoinRejectedError,
    NotFoundError,
    StateTransitionError,
)
from hackpulse.db.models.base import utcnow
from hackpulse.db.models.commit import Commit
from hackpulse.db.models.event import Event, EventParticipant, EventStatus
from hackpulse.db.models.repository import Repository
from hackpulse.db.models.score import Achievement, Score
from hackpulse.db.models.user import User
from hackpulse.services.github_service import GitHubService, parse_github_url
from hackpulse.services.notification_service import NotificationService
from hackpulse.services.score_service import ScoreService

logger = structlog.get_logger()

MAX_PARTICIPANTS = 1000
MAX_DURATION_HOURS = 720


class EventService:
    """Event lifecycle: waiting -> running -> finished.

    Status changes are applied with a conditional UPDATE on the current
    status, so two callers racing on the same transition (an admin and the
    expiry watcher, or two watchers) cannot both succeed.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        notifier: NotificationService | None = None,
        github: GitHubService | None = None,
    ) -> None:
        self.db = db
        self.settings = settings or default_settings
        self.notifier = notifier or NotificationService(None)
        self.github = github

    async def create_event(
        self,
        name: str,
        max_participants: int,
        duration_hours: int,
        description: str | None = None,
        created_by_id: int | None = None,
        min_commits: int = 1,
        allowed_languages: list[str] | None = None,
        require_tests: bool = False,
        is_public: bool = True,
        discord_channel_id: str | None = None,
    ) -> Event:
        if not 1 <= max_participants <= MAX_PARTICIPANTS:
            raise HackPulseError(f"Max participants must be between 1 and {MAX_PARTICIPANTS}")
        if not 1 <= duration_hours <= MAX_DURATION_HOURS:
            raise HackPulseError(f"Duration must be between 1 and {MAX_DURATION_HOURS} hours")

        event = Event(
            name=name,
            description=description,
            created_by_id=created_by_id,
            status=EventStatus.WAITING.value,
            max_participants=max_participants,
            current_participants=0,
            duration_hours=duration_hours,
            total_commits=0,
            min_commits=min_commits,
            allowed_languages=allowed_languages or [],
            require_tests=require_tests,
            is_public=is_public,
            discord_channel_id=discord_channel_id,
        )
        self.db.add(event)
        await self.db.flush()
        await self.db.refresh(event)

        logger.info("Event created", event_id=event.id, name=name, duration_hours=duration_hours)
        return event

    async def get_event(self, event_id: int, for_update: bool = False) -> Event:
        query = select(Event).where(Event.id == event_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        event = result.scalar_one_or_none()
        if not event:
            raise NotFoundError(f"Event {event_id} not found")
        return event

    async def list_events(
        self,
        status: EventStatus | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Event], int]:
        """List events with optional status filter, newest first."""
        offset = (page - 1) * page_size

        query = select(Event)
        count_query = select(func.count(Event.id))
        if status:
            query = query.where(Event.status == status.value)
            count_query = count_query.where(Event.status == status.value)

        count_result = await self.db.execute(count_query)
        total = count_result.scalar() or 0

        result = await self.db.execute(
            query.order_by(Event.created_at.desc(), Event.id.desc()).offset(offset).limit(page_size)
        )
        return list(result.scalars().all()), total

    async def _transition(
        self,
        event: Event,
        from_status: EventStatus,
        to_status: EventStatus,
        *conditions,
        **values,
    ) -> bool:
        result = await self.db.execute(
            update(Event)
            .where(Event.id == event.id, Event.status == from_status.value, *conditions)
            .values(status=to_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        await self.db.refresh(event)
        return True

    async def join_event(
        self,
        event_id: int,
        user: User,
        github_url: str,
    ) -> tuple[Event, Repository, Score]:
        """Register a participant and their repository for a waiting event."""
        event = await self.get_event(event_id)

        if event.status != EventStatus.WAITING:
            raise JoinRejectedError("Event has already started or finished")
        if event.is_full:
            raise JoinRejectedError("Event is full")
        if any(p.user_id == user.id for p in event.participants):
            raise JoinRejectedError("You have already joined this event")

        owner, name = parse_github_url(github_url)
        canonical_url = f"https://github.com/{owner}/{name}".lower()

        existing = await self.db.execute(
            select(Repository.id).where(
                Repository.event_id == event.id,
                Repository.github_url == canonical_url,
            )
        )
        if existing.scalar_one_or_none():
            raise JoinRejectedError("This repository is already registered for this event")

        # Claim a slot atomically so concurrent joins cannot overfill the event.
        claimed = await self.db.execute(
            update(Event)
            .where(
                Event.id == event.id,
                Event.status == EventStatus.WAITING.value,
                Event.current_participants < Event.max_participants,
            )
            .values(current_participants=Event.current_participants + 1)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise JoinRejectedError("Event is full")

        repository = Repository(
            event_id=event.id,
            user_id=user.id,
            github_url=canonical_url,
            owner=owner,
            name=name,
            full_name=f"{owner}/{name}",
            is_active=True,
        )
        self.db.add(repository)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise JoinRejectedError("This repository is already registered for this event") from exc

        event.participants.append(
            EventParticipant(user_id=user.id, repo_id=repository.id, joined_at=utcnow())
        )
        score = Score(event_id=event.id, user_id=user.id, repo_id=repository.id)
        self.db.add(score)
        user.total_events += 1
        await self.db.flush()
        await self.db.refresh(event)

        logger.info(
            "User joined event",
            event_id=event.id,
            user_id=user.id,
            repo=repository.full_name,
            participants=event.current_participants,
        )
        return event, repository, score

    async def start_event(self, event_id: int) -> Event:
        event = await self.get_event(event_id)

        if event.status != EventStatus.WAITING:
            raise StateTransitionError(f"Event is already {event.status}")
        if event.current_participants == 0:
            raise StateTransitionError("Cannot start event with no participants")

        start_time = utcnow()
        end_time = start_time + timedelta(hours=event.duration_hours)
        started = await self._transition(
            event,
            EventStatus.WAITING,
            EventStatus.RUNNING,
            Event.current_participants > 0,
            start_time=start_time,
            end_time=end_time,
        )
        if not started:
            raise StateTransitionError("Event can no longer be started")

        logger.info(
            "Event started",
            event_id=event.id,
            participants=event.current_participants,
            start_time=event.start_time.isoformat(),
            end_time=event.end_time.isoformat(),
        )
        self.notifier.event_started(event.name, event.current_participants, event.end_time)
        return event

    async def finish_event(self, event_id: int, reason: str = "manual") -> Event:
        """Finish a running event, lock every score and finalize ranks."""
        event = await self.get_event(event_id, for_update=True)

        if event.status != EventStatus.RUNNING:
            raise StateTransitionError(f"Event is not running (status: {event.status})")
        if not await self._transition(event, EventStatus.RUNNING, EventStatus.FINISHED):
            raise StateTransitionError("Event is not running")

        scores = ScoreService(self.db, self.settings)
        locked = await scores.lock_event_scores(event.id)
        await scores.recalculate_ranks(event.id, include_locked=True)

        logger.info("Event finished", event_id=event.id, reason=reason, scores_locked=locked)

        podium = await scores.get_leaderboard(event.id, limit=3)
        self.notifier.event_finished(
            event.name,
            [(s.rank, s.user.username, s.total_score) for s in podium],
        )
        return event

    async def delete_event(self, event_id: int) -> None:
        event = await self.get_event(event_id)
        if event.status == EventStatus.RUNNING:
            raise StateTransitionError("Cannot delete a running event. Finish it first.")

        score_ids = select(Score.id).where(Score.event_id == event.id)
        await self.db.execute(delete(Achievement).where(Achievement.score_id.in_(score_ids)))
        await self.db.execute(delete(Commit).where(Commit.event_id == event.id))
        await self.db.execute(delete(Score).where(Score.event_id == event.id))
        await self.db.execute(delete(EventParticipant).where(EventParticipant.event_id == event.id))
        await self.db.execute(delete(Repository).where(Repository.event_id == event.id))
        await self.db.execute(delete(Event).where(Event.id == event.id))

        logger.info("Event deleted", event_id=event_id, name=event.name)

    async def find_expired_events(self, now=None) -> list[Event]:
        result = await self.db.execute(
            select(Event).where(
                Event.status == EventStatus.RUNNING.value,
                Event.end_time <= (now or utcnow()),
            )
        )
        return list(result.scalars().all())

    async def get_repository(self, repo_id: int) -> Repository:
        result = await self.db.execute(select(Repository).where(Repository.id == repo_id))
        repository = result.scalar_one_or_none()
        if not repository:
            raise NotFoundError(f"Repository {repo_id} not found")
        return repository

    async def register_webhook(self, repo_id: int) -> dict:
        """Install the push webhook on a participant repository.

        Failures are reported in the result rather than raised; a repo
        without a webhook can still be synced manually.
        """
        repository = await self.get_repository(repo_id)
        if self.github is None:
            return {"success": False, "error": "GitHub integration is not configured"}

        callback = f"{self.settings.public_base_url.rstrip('/')}{self.settings.api_prefix}/github/webhook"
        try:
            hook = await self.github.register_webhook(repository.owner, repository.name, callback)
        except httpx.HTTPError as exc:
            logger.warning("Webhook registration failed", repo=repository.full_name, error=str(exc))
            repository.webhook_active = False
            return {"success": False, "error": str(exc)}

        repository.webhook_id = str(hook["id"])
        repository.webhook_active = bool(hook.get("active", True))
        return {"success": True, "webhook_id": repository.webhook_id, "url": callback}

    async def refresh_repository(self, repo_id: int) -> Repository:
        """Pull description, language and default branch from GitHub."""
        repository = await self.get_repository(repo_id)
        if self.github is None:
            raise HackPulseError("GitHub integration is not configured")

        try:
            details = await self.github.get_repository(repository.owner, repository.name)
        except httpx.HTTPError as exc:
            logger.warning("Repository refresh failed", repo=repository.full_name, error=str(exc))
            raise HackPulseError(f"Could not reach GitHub for {repository.full_name}") from exc
        if details is None:
            raise NotFoundError(f"Repository {repository.full_name} not found on GitHub")

        repository.description = details.get("description")
        repository.language = details.get("language")
        repository.default_branch = details.get("default_branch") or repository.default_branch
        await self.db.flush()

        logger.info(
            "Repository refreshed",
            repo=repository.full_name,
            default_branch=repository.default_branch,
            language=repository.language,
        )
        return repository
