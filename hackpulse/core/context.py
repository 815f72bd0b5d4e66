from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from hackpulse.core.config import Settings
from hackpulse.core.locks import KeyedLock
from hackpulse.db.database import create_engine, create_session_maker, init_db
from hackpulse.services.ai_service import AIClassifier
from hackpulse.services.analysis_queue import AnalysisQueue
from hackpulse.services.commit_service import CommitIntakeService
from hackpulse.services.event_service import EventService
from hackpulse.services.expiry_watcher import ExpiryWatcher
from hackpulse.services.github_service import GitHubService
from hackpulse.services.notification_service import NotificationService
from hackpulse.services.score_service import ScoreService

logger = structlog.get_logger()


@dataclass
class AppContext:
    """Everything a process shares: engine, clients, locks and workers.

    Built once at process start and handed to request handlers and tasks.
    """

    settings: Settings
    engine: AsyncEngine
    session_maker: async_sessionmaker[AsyncSession]
    github: GitHubService
    classifier: AIClassifier
    notifier: NotificationService
    locks: KeyedLock
    queue: AnalysisQueue
    watcher: ExpiryWatcher
    intake: CommitIntakeService

    @classmethod
    def create(
        cls,
        settings: Settings,
        engine: AsyncEngine | None = None,
        github: GitHubService | None = None,
        classifier: AIClassifier | None = None,
        notifier: NotificationService | None = None,
    ) -> "AppContext":
        engine = engine or create_engine(settings)
        session_maker = create_session_maker(engine)
        github = github or GitHubService(settings)
        classifier = classifier or AIClassifier(settings)
        notifier = notifier or NotificationService(settings.discord_webhook_url)
        locks = KeyedLock()
        queue = AnalysisQueue(delay=settings.ai_analysis_delay)
        watcher = ExpiryWatcher(session_maker, settings, notifier, locks=locks)
        intake = CommitIntakeService(
            session_maker,
            settings,
            locks=locks,
            queue=queue,
            classifier=classifier,
            github=github,
            notifier=notifier,
        )
        queue.bind(intake.analyze_commit)

        return cls(
            settings=settings,
            engine=engine,
            session_maker=session_maker,
            github=github,
            classifier=classifier,
            notifier=notifier,
            locks=locks,
            queue=queue,
            watcher=watcher,
            intake=intake,
        )

    def events(self, db: AsyncSession) -> EventService:
        return EventService(db, self.settings, self.notifier, self.github)

    def scores(self, db: AsyncSession) -> ScoreService:
        return ScoreService(db, self.settings)

    async def startup(self, start_background: bool = True) -> None:
        """Verify the database, then start the background loops.

        A database failure propagates; the process must not start without it.
        """
        await init_db(self.engine)
        logger.info("Database ready", url=self.engine.url.render_as_string(hide_password=True))

        if start_background:
            self.queue.start()
            if self.settings.expiry_watcher_enabled:
                self.watcher.start()

        logger.info(
            "Application context started",
            ai=self.classifier.provider_info(),
            notifications=self.notifier.enabled,
        )

    async def shutdown(self) -> None:
        await self.watcher.stop()
        await self.queue.stop()
        await self.notifier.drain()
        await self.classifier.close()
        await self.engine.dispose()
        logger.info("Application context stopped")
