import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from hackpulse.api.dependencies import get_context
from hackpulse.api.schemas.commit import CommitDetail, CommitList
from hackpulse.api.schemas.event import (
    EventCreate,
    EventDetail,
    EventList,
    JoinRequest,
    JoinResponse,
)
from hackpulse.api.schemas.leaderboard import LeaderboardResponse, ScoreEntry
from hackpulse.api.schemas.repository import RepositoryDetail
from hackpulse.core.context import AppContext
from hackpulse.core.exceptions import HackPulseError
from hackpulse.db import get_db
from hackpulse.db.models.event import EventStatus
from hackpulse.services.user_service import UserService

logger = structlog.get_logger()

router = APIRouter()


@router.post(
    "",
    response_model=EventDetail,
    status_code=status.HTTP_201_CREATED,
    summary="Create an event",
)
async def create_event(
    data: EventCreate,
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> EventDetail:
    """Create a new event in the waiting state."""
    event = await context.events(db).create_event(**data.model_dump())
    return EventDetail.model_validate(event)


@router.get(
    "",
    response_model=EventList,
    summary="List events",
)
async def list_events(
    status_filter: EventStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> EventList:
    events, total = await context.events(db).list_events(status_filter, page, page_size)
    return EventList(
        events=[EventDetail.model_validate(e) for e in events],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{event_id}",
    response_model=EventDetail,
    summary="Get event details",
)
async def get_event(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> EventDetail:
    event = await context.events(db).get_event(event_id)
    return EventDetail.model_validate(event)


@router.delete(
    "/{event_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an event",
)
async def delete_event(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> None:
    """Delete an event that is not running, with its repositories, scores and commits."""
    await context.events(db).delete_event(event_id)


@router.post(
    "/{event_id}/join",
    response_model=JoinResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Join an event with a GitHub repository",
)
async def join_event(
    event_id: int,
    data: JoinRequest,
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> JoinResponse:
    user = await UserService(db).get_or_create(
        data.username,
        display_name=data.display_name,
        email=data.email,
        github_username=data.github_username,
        discord_id=data.discord_id,
    )
    events = context.events(db)
    event, repository, score = await events.join_event(event_id, user, data.github_url)
    try:
        await events.refresh_repository(repository.id)
    except HackPulseError as exc:
        logger.warning(
            "Repository details unavailable at join", repo=repository.full_name, error=exc.reason
        )
    return JoinResponse(
        event=EventDetail.model_validate(event),
        repository=RepositoryDetail.model_validate(repository),
        score_id=score.id,
    )


@router.post(
    "/{event_id}/start",
    response_model=EventDetail,
    summary="Start a waiting event",
)
async def start_event(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> EventDetail:
    event = await context.events(db).start_event(event_id)
    return EventDetail.model_validate(event)


@router.post(
    "/{event_id}/finish",
    response_model=EventDetail,
    summary="Finish a running event",
)
async def finish_event(
    event_id: int,
    context: AppContext = Depends(get_context),
) -> EventDetail:
    """Finish the event, lock every score and finalize the leaderboard."""
    async with context.locks.hold(event_id):
        async with context.session_maker() as db, db.begin():
            event = await context.events(db).finish_event(event_id, reason="manual")
            return EventDetail.model_validate(event)


@router.get(
    "/{event_id}/leaderboard",
    response_model=LeaderboardResponse,
    summary="Get the event leaderboard",
)
async def get_leaderboard(
    event_id: int,
    limit: int | None = Query(None, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> LeaderboardResponse:
    event = await context.events(db).get_event(event_id)
    scores = await context.scores(db).get_leaderboard(event_id, limit)
    return LeaderboardResponse(
        event_id=event_id,
        entries=[ScoreEntry.model_validate(s) for s in scores],
        total=len(scores),
        is_final=event.status == EventStatus.FINISHED,
    )


@router.get(
    "/{event_id}/scores/{user_id}",
    response_model=ScoreEntry,
    summary="Get a participant's score",
)
async def get_user_score(
    event_id: int,
    user_id: int,
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> ScoreEntry:
    score = await context.scores(db).get_user_score(event_id, user_id)
    if not score:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No score for user {user_id} in event {event_id}",
        )
    return ScoreEntry.model_validate(score)


@router.get(
    "/{event_id}/commits",
    response_model=CommitList,
    summary="List commits for an event",
)
async def list_event_commits(
    event_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    context: AppContext = Depends(get_context),
) -> CommitList:
    commits, total = await context.intake.list_commits(
        event_id=event_id, page=page, page_size=page_size
    )
    return CommitList(
        commits=[CommitDetail.model_validate(c) for c in commits],
        total=total,
        page=page,
        page_size=page_size,
    )
