#!/usr/bin/env python
"""Rebuild score aggregates from stored commits.

Usage: python scripts/recalculate_scores.py [EVENT_ID ...]

Locked (finished) leaderboards are left untouched.
"""

import asyncio
import sys

from sqlalchemy import select

from hackpulse.core.config import settings
from hackpulse.db.database import create_engine, create_session_maker
from hackpulse.db.models.event import Event, EventStatus
from hackpulse.db.models.score import Score
from hackpulse.services.score_service import ScoreService


async def recalculate_event(session_maker, event_id: int) -> None:
    async with session_maker() as db:
        service = ScoreService(db, settings)
        result = await db.execute(select(Score).where(Score.event_id == event_id))
        scores = result.scalars().all()

        rebuilt = 0
        for score in scores:
            if score.is_locked:
                continue
            await service.rebuild(score)
            rebuilt += 1

        await db.commit()
        print(f"  Event {event_id}: rebuilt {rebuilt} of {len(scores)} scores")

        print(f"  {'Rank':<6}{'Username':<25}{'Score':<10}{'Valid':<8}{'Pct':<8}")
        for score in await service.get_leaderboard(event_id, limit=10):
            print(
                f"  {score.rank or '-':<6}{score.user.username:<25}"
                f"{score.total_score:<10}{score.valid_commits:<8}{score.percentile or 0:<8}"
            )


async def main(event_ids: list[int]) -> None:
    engine = create_engine(settings)
    session_maker = create_session_maker(engine)

    try:
        if not event_ids:
            async with session_maker() as db:
                result = await db.execute(
                    select(Event.id).where(Event.status != EventStatus.FINISHED.value)
                )
                event_ids = list(result.scalars().all())

        print("=" * 60)
        print(f"RECALCULATING SCORES FOR {len(event_ids)} EVENT(S)")
        print("=" * 60)
        for event_id in event_ids:
            await recalculate_event(session_maker, event_id)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main([int(arg) for arg in sys.argv[1:]]))
