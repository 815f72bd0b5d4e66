import asyncio
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

import httpx
import structlog
from pydantic import ValidationError
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hackpulse.core.config import Settings
from hackpulse.core.exceptions import HackPulseError, NotFoundError, StateTransitionError
from hackpulse.core.locks import KeyedLock
from hackpulse.db.models.base import utcnow
from hackpulse.db.models.commit import Commit, Complexity
from hackpulse.db.models.event import Event, EventStatus
from hackpulse.db.models.repository import Repository
from hackpulse.db.models.score import Score
from hackpulse.db.models.user import User
from hackpulse.services.ai_service import AIClassifier
from hackpulse.services.analysis_queue import AnalysisQueue
from hackpulse.services.commit_normalizer import (
    CommitPayload,
    WindowCheck,
    build_flags,
    evaluate_window,
    from_github_detail,
    from_github_listing,
    from_webhook,
    validate_commit_rules,
)
from hackpulse.services.github_service import GitHubService
from hackpulse.services.notification_service import NotificationService
from hackpulse.services.score_service import ScoreService
from hackpulse.services.scoring_service import ScoringService

logger = structlog.get_logger()


def _plain(value) -> str:
    return value.value if isinstance(value, Enum) else value


class IntakeStatus(str, Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class IntakeResult:
    sha: str
    status: IntakeStatus
    reason: str | None = None
    commit_id: int | None = None
    score: int | None = None
    is_valid: bool | None = None
    notes: list[str] = field(default_factory=list)

    @classmethod
    def skipped(cls, sha: str, reason: str) -> "IntakeResult":
        return cls(sha=sha, status=IntakeStatus.SKIPPED, reason=reason)


@dataclass
class BatchResult:
    processed: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)
    results: list[IntakeResult] = field(default_factory=list)

    def add(self, result: IntakeResult) -> None:
        self.results.append(result)
        if result.status == IntakeStatus.PROCESSED:
            self.processed += 1
        elif result.status == IntakeStatus.SKIPPED:
            self.skipped += 1
        else:
            self.errors.append({"sha": result.sha, "error": result.reason})


class CommitIntakeService:
    """Validate, store and score inbound commits.

    Each intake runs in its own transaction while holding the lock for the
    commit's event. The deferred classification step and event finish take
    the same lock before touching the aggregate.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        settings: Settings,
        locks: KeyedLock,
        queue: AnalysisQueue,
        classifier: AIClassifier,
        github: GitHubService | None = None,
        notifier: NotificationService | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.settings = settings
        self.locks = locks
        self.queue = queue
        self.classifier = classifier
        self.github = github
        self.notifier = notifier or NotificationService(None)
        self.scoring = ScoringService(settings)

    async def _resolve_repository(
        self,
        db: AsyncSession,
        full_name: str,
        event_id: int | None,
    ) -> Repository | None:
        query = (
            select(Repository)
            .join(Event, Event.id == Repository.event_id)
            .where(
                func.lower(Repository.full_name) == full_name.lower(),
                Repository.is_active.is_(True),
            )
            .order_by(
                case((Event.status == EventStatus.RUNNING.value, 0), else_=1),
                Event.id.desc(),
            )
        )
        if event_id is not None:
            query = query.where(Repository.event_id == event_id)
        result = await db.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def _sha_exists(self, db: AsyncSession, sha: str) -> bool:
        result = await db.execute(select(Commit.id).where(Commit.sha == sha))
        return result.scalar_one_or_none() is not None

    async def _with_details(self, repository: Repository, payload: CommitPayload) -> CommitPayload:
        if self.github is None:
            return payload
        try:
            details = await self.github.fetch_commit_details(
                repository.owner, repository.name, payload.sha
            )
            return payload.with_details(from_github_detail(details))
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning(
                "Commit detail fetch failed, using inbound payload",
                repo=repository.full_name,
                sha=payload.sha,
                error=str(exc),
            )
            return payload

    async def process_commit(
        self,
        full_name: str,
        payload: CommitPayload,
        event_id: int | None = None,
        fetch_details: bool = True,
    ) -> IntakeResult:
        """Run one commit through intake.

        Validation rejections come back as ``skipped`` results; they are
        never raised.
        """
        async with self.session_maker() as db:
            repository = await self._resolve_repository(db, full_name, event_id)
            if repository is None:
                return IntakeResult.skipped(payload.sha, "Repository not registered for any event")
            if await self._sha_exists(db, payload.sha):
                return IntakeResult.skipped(payload.sha, "Commit already processed")

        if fetch_details:
            payload = await self._with_details(repository, payload)

        try:
            async with self.locks.hold(repository.event_id):
                result, event_name = await self._store(repository.id, payload)
        except IntegrityError:
            logger.info("Duplicate commit delivery", sha=payload.sha, repo=full_name)
            return IntakeResult.skipped(payload.sha, "Commit already processed")

        if result.status != IntakeStatus.PROCESSED:
            return result

        logger.info(
            "Commit processed",
            sha=payload.sha,
            repo=repository.full_name,
            event_id=repository.event_id,
            score=result.score,
            is_valid=result.is_valid,
        )
        if result.is_valid:
            self.queue.enqueue(result.commit_id)
        self.notifier.commit_processed(
            event_name, repository.full_name, payload.sha, payload.message, result.score
        )
        return result

    async def _store(self, repo_id: int, payload: CommitPayload) -> tuple[IntakeResult, str | None]:
        async with self.session_maker() as db, db.begin():
            repository = await db.get(Repository, repo_id)
            if repository is None:
                return IntakeResult.skipped(payload.sha, "Repository not registered for any event"), None
            # Row lock on the event serializes intake, analysis and finish across processes.
            event = await db.get(Event, repository.event_id, with_for_update=True)

            if await self._sha_exists(db, payload.sha):
                return IntakeResult.skipped(payload.sha, "Commit already processed"), None
            if event.status != EventStatus.RUNNING:
                return IntakeResult.skipped(payload.sha, f"Event is not running (status: {event.status})"), None

            window = evaluate_window(payload.timestamp, event)
            if window == WindowCheck.BEFORE_START:
                return IntakeResult.skipped(payload.sha, "Commit predates event start"), None

            prior = await db.execute(
                select(func.count(Commit.id)).where(
                    Commit.event_id == event.id,
                    Commit.repo_id == repository.id,
                )
            )
            flags = build_flags(
                payload, window, prior.scalar() or 0, self.settings.large_commit_threshold
            )
            notes = validate_commit_rules(payload.files, event)

            commit = Commit(
                event_id=event.id,
                repo_id=repository.id,
                user_id=repository.user_id,
                sha=payload.sha,
                message=payload.message,
                author_name=payload.author.name,
                author_email=payload.author.email,
                author_username=payload.author.username,
                author_avatar=payload.author.avatar,
                timestamp=payload.timestamp,
                url=payload.url,
                additions=payload.stats.additions,
                deletions=payload.stats.deletions,
                total_changes=payload.total_changes,
                files_changed=payload.stats.files_changed or len(payload.files),
                files=[f.model_dump(exclude={"patch"}) for f in payload.files],
                is_valid=flags.is_valid,
                is_late_submission=flags.is_late_submission,
                is_first_commit=flags.is_first_commit,
                is_large_commit=flags.is_large_commit,
            )
            contribution = self.scoring.score_commit(commit)
            db.add(commit)
            await db.flush()

            repository.total_commits += 1
            repository.last_commit_at = max(
                filter(None, [repository.last_commit_at, commit.timestamp])
            )
            if commit.counts_toward_score:
                repository.total_score += contribution.total
                repository.additions += commit.additions
                repository.deletions += commit.deletions
                repository.files_changed += commit.files_changed

            scores = ScoreService(db, self.settings)
            score = await scores.get_score(event.id, repository.user_id, for_update=True)
            if score is None:
                score = Score(event_id=event.id, user_id=repository.user_id, repo_id=repository.id)
                db.add(score)
                await db.flush()
            if score.is_locked:
                logger.warning("Score is locked, commit stored without aggregate update", sha=payload.sha)
            else:
                await scores.apply_commit(score, commit)
                await scores.recalculate_ranks(event.id)

            await db.execute(
                update(Event)
                .where(Event.id == event.id)
                .values(total_commits=Event.total_commits + 1)
                .execution_options(synchronize_session=False)
            )

            return (
                IntakeResult(
                    sha=payload.sha,
                    status=IntakeStatus.PROCESSED,
                    commit_id=commit.id,
                    score=commit.score_total,
                    is_valid=commit.is_valid,
                    notes=notes,
                ),
                event.name,
            )

    async def process_batch(
        self,
        full_name: str,
        payloads: Sequence[CommitPayload],
        event_id: int | None = None,
        fetch_details: bool = True,
        batch: BatchResult | None = None,
    ) -> BatchResult:
        """Process commits in order; one bad item never aborts the batch."""
        batch = batch or BatchResult()
        limit = self.settings.webhook_batch_limit
        if len(payloads) > limit:
            logger.warning("Commit batch truncated", repo=full_name, received=len(payloads), limit=limit)
            for payload in payloads[limit:]:
                batch.add(IntakeResult.skipped(payload.sha, "Batch limit exceeded"))

        for payload in payloads[:limit]:
            try:
                result = await self.process_commit(full_name, payload, event_id, fetch_details)
            except Exception as exc:
                logger.exception("Commit intake failed", repo=full_name, sha=payload.sha)
                result = IntakeResult(sha=payload.sha, status=IntakeStatus.ERROR, reason=str(exc))
            batch.add(result)

        logger.info(
            "Commit batch complete",
            repo=full_name,
            processed=batch.processed,
            skipped=batch.skipped,
            errors=len(batch.errors),
        )
        return batch

    async def process_push(self, full_name: str, commits: list[dict]) -> BatchResult:
        """Batch intake for the ``commits[]`` array of a push webhook.

        Entries that cannot be parsed are reported as errors in the result.
        """
        batch = BatchResult()
        if not isinstance(commits, list):
            batch.add(
                IntakeResult(
                    sha="unknown",
                    status=IntakeStatus.ERROR,
                    reason="Malformed push: commits is not a list",
                )
            )
            return batch

        payloads = []
        for raw in commits:
            if not isinstance(raw, dict):
                batch.add(
                    IntakeResult(
                        sha="unknown",
                        status=IntakeStatus.ERROR,
                        reason="Malformed commit: expected an object",
                    )
                )
                continue
            try:
                payloads.append(from_webhook(raw))
            except (KeyError, TypeError, AttributeError, ValidationError) as exc:
                sha = raw.get("id")
                batch.add(
                    IntakeResult(
                        sha=sha if isinstance(sha, str) else "unknown",
                        status=IntakeStatus.ERROR,
                        reason=f"Malformed commit: {exc}",
                    )
                )
        return await self.process_batch(full_name, payloads, batch=batch)

    async def analyze_commit(self, commit_id: int) -> bool:
        """Classify a stored commit and fold the new score into the aggregate."""
        async with self.session_maker() as db:
            commit = await db.get(Commit, commit_id)
        if commit is None:
            logger.warning("Commit vanished before analysis", commit_id=commit_id)
            return False
        if commit.ai_processed:
            return False

        report = await self.classifier.classify(
            commit.message,
            {
                "additions": commit.additions,
                "deletions": commit.deletions,
                "files_changed": commit.files_changed,
            },
            commit.files,
        )

        event_id = commit.event_id
        async with self.locks.hold(event_id):
            async with self.session_maker() as db, db.begin():
                event = await db.get(Event, event_id, with_for_update=True)
                commit = await db.get(Commit, commit_id, with_for_update=True)
                if commit is None or commit.ai_processed:
                    return False

                was_counted = commit.counts_toward_score
                previous = ScoringService.current_score(commit)

                commit.ai_processed = True
                commit.ai_quality_score = report.quality_score
                commit.ai_is_spam = report.is_spam
                commit.ai_category = report.category.value
                commit.ai_complexity = report.complexity.value
                commit.ai_summary = report.summary
                commit.ai_feedback = report.feedback
                commit.ai_suggestions = report.suggestions
                commit.ai_technologies = report.technologies
                current = self.scoring.score_commit(commit)

                repository = await db.get(Repository, commit.repo_id)
                repository.total_score += (current.total if commit.counts_toward_score else 0) - (
                    previous.total if was_counted else 0
                )
                if was_counted and not commit.counts_toward_score:
                    repository.additions -= commit.additions
                    repository.deletions -= commit.deletions
                    repository.files_changed -= commit.files_changed

                scores = ScoreService(db, self.settings)
                score = await scores.get_score(commit.event_id, commit.user_id, for_update=True)
                earned = []
                if score is None or score.is_locked:
                    logger.info("Score is locked, keeping classification only", commit_id=commit_id)
                else:
                    await scores.apply_rescore(score, commit, previous, was_counted)
                    earned = await scores.evaluate_achievements(score, commit, event)
                    await scores.recalculate_ranks(commit.event_id)

                average = await db.execute(
                    select(func.avg(Commit.ai_quality_score)).where(
                        Commit.repo_id == repository.id,
                        Commit.is_valid.is_(True),
                    )
                )
                repository.average_quality = round(float(average.scalar() or 0), 2)

                user = await db.get(User, commit.user_id) if earned else None

        logger.info(
            "Commit analyzed",
            commit_id=commit_id,
            quality=report.quality_score,
            is_spam=report.is_spam,
            score=current.total,
            achievements=[a.value for a in earned],
        )
        for achievement in earned:
            self.notifier.achievement_earned(event.name, user.username, achievement.value)
        return True

    async def reanalyze_pending(self, limit: int = 50, event_id: int | None = None) -> int:
        """Classify valid commits whose analysis never completed."""
        query = select(Commit.id).where(Commit.ai_processed.is_(False), Commit.is_valid.is_(True))
        if event_id is not None:
            query = query.where(Commit.event_id == event_id)

        async with self.session_maker() as db:
            result = await db.execute(query.order_by(Commit.timestamp).limit(limit))
            pending = list(result.scalars().all())

        analyzed = 0
        for position, commit_id in enumerate(pending):
            if position and self.settings.ai_analysis_delay:
                await asyncio.sleep(self.settings.ai_analysis_delay)
            try:
                if await self.analyze_commit(commit_id):
                    analyzed += 1
            except Exception:
                logger.exception("Reanalysis failed", commit_id=commit_id)

        if pending:
            logger.info(
                "Pending commits reanalyzed",
                event_id=event_id,
                found=len(pending),
                analyzed=analyzed,
            )
        return analyzed

    async def insights(self, event_id: int) -> dict | None:
        """Summarize the AI analysis of an event's valid commits.

        Returns None until at least one commit has been analyzed.
        """
        async with self.session_maker() as db:
            result = await db.execute(
                select(Commit)
                .where(
                    Commit.event_id == event_id,
                    Commit.ai_processed.is_(True),
                    Commit.is_valid.is_(True),
                )
                .order_by(Commit.ai_quality_score.desc(), Commit.timestamp)
            )
            commits = list(result.scalars().all())

        if not commits:
            return None

        total = len(commits)
        spam = sum(1 for c in commits if c.ai_is_spam)
        categories = Counter(_plain(c.ai_category) for c in commits)
        complexity = {level.value: 0 for level in Complexity}
        complexity.update(Counter(_plain(c.ai_complexity) for c in commits))
        technologies = Counter(
            t for c in commits for t in (c.ai_technologies or []) if isinstance(t, str)
        )
        suggestions = Counter(
            s.lower()[:50] for c in commits for s in (c.ai_suggestions or []) if isinstance(s, str)
        )

        distribution = {"excellent": 0, "good": 0, "fair": 0, "poor": 0}
        for commit in commits:
            quality = commit.ai_quality_score or 0
            if quality >= 80:
                distribution["excellent"] += 1
            elif quality >= 60:
                distribution["good"] += 1
            elif quality >= 40:
                distribution["fair"] += 1
            else:
                distribution["poor"] += 1

        return {
            "total_analyzed": total,
            "average_quality": round(sum(c.ai_quality_score or 0 for c in commits) / total, 2),
            "categories": dict(categories),
            "complexity": complexity,
            "spam_count": spam,
            "spam_percentage": round(spam / total * 100, 2),
            "quality_distribution": distribution,
            "top_technologies": [
                {"technology": tech, "count": count} for tech, count in technologies.most_common(10)
            ],
            "top_suggestions": [
                {"suggestion": text, "count": count} for text, count in suggestions.most_common(5)
            ],
            "top_commits": [
                {
                    "sha": c.sha,
                    "message": c.message,
                    "quality_score": c.ai_quality_score,
                    "category": _plain(c.ai_category),
                    "user_id": c.user_id,
                }
                for c in commits[:5]
            ],
        }

    async def sync_repository(self, repo_id: int) -> BatchResult:
        """Pull the repository's commits for the event window from GitHub."""
        async with self.session_maker() as db:
            repository = await db.get(Repository, repo_id)
            if repository is None:
                raise NotFoundError(f"Repository {repo_id} not found")
            event = await db.get(Event, repository.event_id)

        if event.status != EventStatus.RUNNING:
            raise StateTransitionError(f"Event is not running (status: {event.status})")
        if self.github is None:
            raise HackPulseError("GitHub integration is not configured")

        try:
            listing = await self.github.fetch_commits_since(
                repository.owner,
                repository.name,
                since=event.start_time,
                until=min(utcnow(), event.end_time),
                branch=repository.default_branch,
                limit=self.settings.sync_commit_limit,
            )
        except httpx.HTTPError as exc:
            logger.warning("Repository sync failed", repo=repository.full_name, error=str(exc))
            raise HackPulseError(f"GitHub API error: {exc}") from exc

        batch = BatchResult()
        payloads = []
        # GitHub lists newest first; intake oldest first so flags follow history.
        for item in reversed(listing):
            try:
                payloads.append(from_github_listing(item))
            except (KeyError, TypeError, ValidationError) as exc:
                batch.add(
                    IntakeResult(
                        sha=item.get("sha", "unknown"),
                        status=IntakeStatus.ERROR,
                        reason=f"Malformed commit: {exc}",
                    )
                )

        logger.info("Syncing repository", repo=repository.full_name, commits=len(payloads))
        return await self.process_batch(repository.full_name, payloads, event_id=event.id, batch=batch)

    async def list_commits(
        self,
        event_id: int | None = None,
        repo_id: int | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Commit], int]:
        query = select(Commit)
        count_query = select(func.count(Commit.id))
        if event_id is not None:
            query = query.where(Commit.event_id == event_id)
            count_query = count_query.where(Commit.event_id == event_id)
        if repo_id is not None:
            query = query.where(Commit.repo_id == repo_id)
            count_query = count_query.where(Commit.repo_id == repo_id)

        async with self.session_maker() as db:
            total = (await db.execute(count_query)).scalar() or 0
            result = await db.execute(
                query.order_by(Commit.timestamp.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            return list(result.scalars().all()), total

    async def commit_stats(self, repo_id: int) -> dict:
        async with self.session_maker() as db:
            repository = await db.get(Repository, repo_id)
            if repository is None:
                raise NotFoundError(f"Repository {repo_id} not found")

            result = await db.execute(
                select(
                    func.count(Commit.id),
                    func.coalesce(func.sum(Commit.additions), 0),
                    func.coalesce(func.sum(Commit.deletions), 0),
                    func.coalesce(func.sum(Commit.files_changed), 0),
                    func.avg(Commit.score_total),
                    func.avg(Commit.ai_quality_score),
                ).where(Commit.repo_id == repo_id, Commit.is_valid.is_(True))
            )
            count, additions, deletions, files_changed, avg_score, avg_quality = result.one()

            late = await db.execute(
                select(func.count(Commit.id)).where(
                    Commit.repo_id == repo_id, Commit.is_late_submission.is_(True)
                )
            )

        return {
            "repo_id": repo_id,
            "full_name": repository.full_name,
            "total_commits": count,
            "late_commits": late.scalar() or 0,
            "total_additions": additions,
            "total_deletions": deletions,
            "total_files_changed": files_changed,
            "average_score": round(float(avg_score or 0), 2),
            "average_quality": round(float(avg_quality or 0), 2),
        }
