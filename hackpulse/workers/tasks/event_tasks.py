import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from hackpulse.core.config import get_settings
from hackpulse.core.context import AppContext
from hackpulse.workers.celery_app import celery_app

logger = structlog.get_logger()

T = TypeVar("T")


def run_async(coro):
    """Run async code in sync context."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        pending = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()


async def _with_context(work: Callable[[AppContext], Awaitable[T]]) -> T:
    # Engines are bound to the loop they were created on, so each task run
    # builds its own context.
    context = AppContext.create(get_settings())
    await context.startup(start_background=False)
    try:
        return await work(context)
    finally:
        await context.shutdown()


@celery_app.task
def check_expired_events() -> dict:
    """Finish running events whose end time has passed."""
    finished = run_async(_with_context(lambda context: context.watcher.tick()))
    if finished:
        logger.info("Expired events finished", event_ids=finished)
    return {"status": "completed", "finished": finished}


@celery_app.task
def reanalyze_pending_commits(limit: int = 50, event_id: int | None = None) -> dict:
    """Classify valid commits whose deferred analysis never ran."""
    analyzed = run_async(
        _with_context(lambda context: context.intake.reanalyze_pending(limit, event_id=event_id))
    )
    return {"status": "completed", "event_id": event_id, "analyzed": analyzed}


@celery_app.task
def sync_repository(repo_id: int) -> dict:
    """Pull a participant repository's commits from GitHub."""
    batch = run_async(_with_context(lambda context: context.intake.sync_repository(repo_id)))
    logger.info(
        "Repository synced",
        repo_id=repo_id,
        processed=batch.processed,
        skipped=batch.skipped,
        errors=len(batch.errors),
    )
    return {
        "status": "completed",
        "repo_id": repo_id,
        "processed": batch.processed,
        "skipped": batch.skipped,
        "errors": batch.errors,
    }
