from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hackpulse.api.dependencies import get_context
from hackpulse.api.schemas.commit import BatchOutcome, CommitDetail, CommitList
from hackpulse.api.schemas.repository import CommitStats, RepositoryDetail, WebhookRegistration
from hackpulse.core.context import AppContext
from hackpulse.db import get_db

router = APIRouter()


@router.get(
    "/{repo_id}",
    response_model=RepositoryDetail,
    summary="Get repository details",
)
async def get_repository(
    repo_id: int,
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> RepositoryDetail:
    repository = await context.events(db).get_repository(repo_id)
    return RepositoryDetail.model_validate(repository)


@router.post(
    "/{repo_id}/refresh",
    response_model=RepositoryDetail,
    summary="Refresh repository details from GitHub",
)
async def refresh_repository(
    repo_id: int,
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> RepositoryDetail:
    """Update description, language and the default branch used by sync."""
    repository = await context.events(db).refresh_repository(repo_id)
    return RepositoryDetail.model_validate(repository)


@router.post(
    "/{repo_id}/sync",
    response_model=BatchOutcome,
    summary="Sync commits from GitHub",
)
async def sync_repository(
    repo_id: int,
    context: AppContext = Depends(get_context),
) -> BatchOutcome:
    """Fetch the repository's commits for the event window and run them through intake."""
    batch = await context.intake.sync_repository(repo_id)
    return BatchOutcome.model_validate(batch)


@router.get(
    "/{repo_id}/stats",
    response_model=CommitStats,
    summary="Get commit statistics",
)
async def get_commit_stats(
    repo_id: int,
    context: AppContext = Depends(get_context),
) -> CommitStats:
    return CommitStats(**await context.intake.commit_stats(repo_id))


@router.post(
    "/{repo_id}/webhook",
    response_model=WebhookRegistration,
    summary="Register the GitHub push webhook",
)
async def register_webhook(
    repo_id: int,
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> WebhookRegistration:
    result = await context.events(db).register_webhook(repo_id)
    return WebhookRegistration(**result)


@router.get(
    "/{repo_id}/commits",
    response_model=CommitList,
    summary="List commits for a repository",
)
async def list_repository_commits(
    repo_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    context: AppContext = Depends(get_context),
) -> CommitList:
    commits, total = await context.intake.list_commits(
        repo_id=repo_id, page=page, page_size=page_size
    )
    return CommitList(
        commits=[CommitDetail.model_validate(c) for c in commits],
        total=total,
        page=page,
        page_size=page_size,
    )
