from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hackpulse.api.dependencies import get_context
from hackpulse.api.schemas.ai import EventInsights, InsightsResponse, ReanalyzeResponse
from hackpulse.core.context import AppContext
from hackpulse.db import get_db

router = APIRouter()


@router.get(
    "/provider",
    response_model=dict,
    summary="Get the active AI provider",
)
async def get_provider(context: AppContext = Depends(get_context)) -> dict:
    return {**context.classifier.provider_info(), "pending_analysis": context.queue.pending}


@router.get(
    "/insights/{event_id}",
    response_model=InsightsResponse,
    summary="Summarize AI analysis for an event",
)
async def get_insights(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> InsightsResponse:
    await context.events(db).get_event(event_id)
    insights = await context.intake.insights(event_id)
    if insights is None:
        return InsightsResponse(
            event_id=event_id, insights=None, message="No analyzed commits found for this event"
        )
    return InsightsResponse(event_id=event_id, insights=EventInsights(**insights))


@router.post(
    "/reanalyze",
    response_model=ReanalyzeResponse,
    summary="Analyze commits still waiting for classification",
)
async def reanalyze(
    limit: int = Query(50, ge=1, le=500),
    event_id: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
) -> ReanalyzeResponse:
    if event_id is not None:
        await context.events(db).get_event(event_id)
    analyzed = await context.intake.reanalyze_pending(limit, event_id=event_id)
    return ReanalyzeResponse(event_id=event_id, analyzed=analyzed)
