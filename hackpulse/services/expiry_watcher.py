import asyncio
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hackpulse.core.config import Settings
from hackpulse.core.exceptions import StateTransitionError
from hackpulse.core.locks import KeyedLock
from hackpulse.db.models.base import utcnow
from hackpulse.db.models.event import Event, EventStatus
from hackpulse.services.event_service import EventService
from hackpulse.services.notification_service import NotificationService

logger = structlog.get_logger()


class ExpiryWatcher:
    """Polls for running events past their end time and finishes them."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        settings: Settings,
        notifier: NotificationService | None = None,
        interval: float | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.locks = locks or KeyedLock()
        self.settings = settings
        self.notifier = notifier or NotificationService(None)
        self.interval = interval if interval is not None else settings.expiry_check_interval
        self._task: asyncio.Task | None = None
        self.last_tick: datetime | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self, now: datetime | None = None) -> list[int]:
        """Finish every expired event; returns the ids that were finished."""
        now = now or utcnow()
        self.last_tick = now

        async with self.session_maker() as db:
            result = await db.execute(
                select(Event.id).where(
                    Event.status == EventStatus.RUNNING.value,
                    Event.end_time <= now,
                )
            )
            expired = list(result.scalars().all())

        finished = []
        for event_id in expired:
            try:
                async with self.locks.hold(event_id):
                    async with self.session_maker() as db, db.begin():
                        events = EventService(db, self.settings, self.notifier)
                        await events.finish_event(event_id, reason="expired")
                finished.append(event_id)
            except StateTransitionError as exc:
                # Finished elsewhere since the query ran.
                logger.info("Expired event already finished", event_id=event_id, reason=exc.reason)
            except Exception:
                logger.exception("Failed to finish expired event", event_id=event_id)

        if expired:
            logger.info("Expiry check complete", expired=len(expired), finished=len(finished))
        return finished

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception:
                logger.exception("Expiry check failed")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="expiry-watcher")
        logger.info("Expiry watcher started", interval=self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Expiry watcher stopped")

    def status(self) -> dict:
        return {
            "running": self.running,
            "interval": self.interval,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
        }
