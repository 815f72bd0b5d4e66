from collections.abc import Sequence
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from hackpulse.core.config import Settings, settings as default_settings
from hackpulse.core.exceptions import ScoreLockedError
from hackpulse.db.models.base import utcnow
from hackpulse.db.models.commit import Commit, CommitCategory
from hackpulse.db.models.event import Event
from hackpulse.db.models.score import Achievement, AchievementType, Score
from hackpulse.services.scoring_service import CommitScore, ScoringService

logger = structlog.get_logger()

# House rules for achievements; tune per event series.
QUALITY_MASTER_THRESHOLD = 90
BUG_HUNTER_COMMITS = 3
CONSISTENCY_KING_COMMITS = 10
SPEED_DEMON_COMMITS = 5
OPENING_WINDOW = timedelta(hours=1)


def rank_totals(totals: Sequence[int]) -> list[tuple[int, Decimal]]:
    """Rank a list of totals, returning (rank, percentile) per input position.

    rank = 1 + number of strictly higher totals, so ties share a rank.
    percentile = (n - rank) / n * 100.
    """
    n = len(totals)
    ordered = sorted(totals, reverse=True)
    first_position: dict[int, int] = {}
    for position, total in enumerate(ordered, start=1):
        first_position.setdefault(total, position)

    ranked = []
    for total in totals:
        rank = first_position[total]
        percentile = (Decimal(n - rank) / Decimal(n) * 100).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
        ranked.append((rank, percentile))
    return ranked


class ScoreService:
    """Maintains the per-(event, user) score aggregate and event rankings."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or default_settings

    async def get_score(self, event_id: int, user_id: int, for_update: bool = False) -> Score | None:
        query = select(Score).where(Score.event_id == event_id, Score.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    def _ensure_unlocked(self, score: Score) -> None:
        if score.is_locked:
            raise ScoreLockedError(
                f"Score for user {score.user_id} in event {score.event_id} is locked"
            )

    def _add_contribution(self, score: Score, contribution: CommitScore, sign: int = 1) -> None:
        score.total_score += sign * contribution.total
        score.base_score += sign * contribution.base
        score.quality_score += sign * contribution.quality
        score.timing_score += sign * contribution.timing

    def _add_diff(self, score: Score, commit: Commit, sign: int = 1) -> None:
        score.total_additions += sign * commit.additions
        score.total_deletions += sign * commit.deletions
        score.total_files_changed += sign * commit.files_changed

    async def _refresh_average_quality(self, score: Score) -> None:
        # Recomputed from stored commits so late AI results are reflected.
        result = await self.db.execute(
            select(func.avg(Commit.ai_quality_score)).where(
                Commit.event_id == score.event_id,
                Commit.user_id == score.user_id,
                Commit.is_valid.is_(True),
            )
        )
        average = result.scalar()
        score.average_quality = round(float(average), 2) if average is not None else 0.0

    async def apply_commit(self, score: Score, commit: Commit) -> None:
        """Fold a newly stored commit into the aggregate."""
        self._ensure_unlocked(score)

        score.total_commits += 1
        if commit.counts_toward_score:
            score.valid_commits += 1
            self._add_contribution(score, ScoringService.current_score(commit))
            self._add_diff(score, commit)
            await self._refresh_average_quality(score)

        score.last_updated = utcnow()

    async def apply_rescore(
        self,
        score: Score,
        commit: Commit,
        previous: CommitScore,
        was_counted: bool,
    ) -> None:
        """Replace a commit's earlier contribution after classification."""
        self._ensure_unlocked(score)

        now_counted = commit.counts_toward_score
        if was_counted:
            self._add_contribution(score, previous, sign=-1)
        if now_counted:
            self._add_contribution(score, ScoringService.current_score(commit))

        if was_counted and not now_counted:
            score.valid_commits -= 1
            self._add_diff(score, commit, sign=-1)
        elif now_counted and not was_counted:
            score.valid_commits += 1
            self._add_diff(score, commit)

        await self._refresh_average_quality(score)
        score.last_updated = utcnow()

    def add_achievement(self, score: Score, achievement_type: AchievementType) -> bool:
        """Grant an achievement once; each grant adds the fixed bonus."""
        self._ensure_unlocked(score)
        if achievement_type in score.achievement_types:
            return False

        score.achievements.append(
            Achievement(achievement_type=achievement_type.value, earned_at=utcnow())
        )
        score.bonus_score += self.settings.achievement_bonus
        score.total_score += self.settings.achievement_bonus
        logger.info(
            "Achievement earned",
            event_id=score.event_id,
            user_id=score.user_id,
            achievement=achievement_type.value,
        )
        return True

    async def _count_counted(self, score: Score, *conditions) -> int:
        result = await self.db.execute(
            select(func.count(Commit.id)).where(
                Commit.event_id == score.event_id,
                Commit.user_id == score.user_id,
                Commit.is_valid.is_(True),
                Commit.ai_is_spam.is_(False),
                *conditions,
            )
        )
        return result.scalar() or 0

    async def evaluate_achievements(
        self,
        score: Score,
        commit: Commit,
        event: Event,
    ) -> list[AchievementType]:
        """Check milestone achievements after a commit has been classified."""
        if not commit.counts_toward_score:
            return []

        candidates: list[AchievementType] = []
        if commit.is_first_commit:
            candidates.append(AchievementType.FIRST_COMMIT)
        if commit.ai_processed and commit.ai_quality_score >= QUALITY_MASTER_THRESHOLD:
            candidates.append(AchievementType.QUALITY_MASTER)
        if commit.timestamp.hour < 5:
            candidates.append(AchievementType.NIGHT_OWL)

        opening_ends = event.start_time + OPENING_WINDOW if event.start_time else None
        if opening_ends is not None and commit.timestamp <= opening_ends:
            candidates.append(AchievementType.EARLY_BIRD)
            early = await self._count_counted(score, Commit.timestamp <= opening_ends)
            if early >= SPEED_DEMON_COMMITS:
                candidates.append(AchievementType.SPEED_DEMON)

        if commit.ai_category == CommitCategory.BUGFIX:
            bugfixes = await self._count_counted(
                score, Commit.ai_category == CommitCategory.BUGFIX.value
            )
            if bugfixes >= BUG_HUNTER_COMMITS:
                candidates.append(AchievementType.BUG_HUNTER)

        if score.valid_commits >= CONSISTENCY_KING_COMMITS:
            candidates.append(AchievementType.CONSISTENCY_KING)

        return [c for c in candidates if self.add_achievement(score, c)]

    async def recalculate_ranks(self, event_id: int, include_locked: bool = False) -> list[Score]:
        """Re-rank every participant of an event from the stored totals."""
        result = await self.db.execute(
            select(Score)
            .where(Score.event_id == event_id)
            .order_by(Score.total_score.desc(), Score.id)
        )
        scores = list(result.scalars().all())
        if not scores:
            return scores

        if not include_locked and any(s.is_locked for s in scores):
            logger.debug("Skipping rank update for locked leaderboard", event_id=event_id)
            return scores

        for score, (rank, percentile) in zip(scores, rank_totals([s.total_score for s in scores])):
            score.rank = rank
            score.percentile = percentile
        return scores

    async def lock_event_scores(self, event_id: int) -> int:
        result = await self.db.execute(select(Score).where(Score.event_id == event_id))
        scores = list(result.scalars().all())
        for score in scores:
            score.is_locked = True
            score.last_updated = utcnow()
        return len(scores)

    async def rebuild(self, score: Score) -> Score:
        """Recompute an aggregate from its stored commits (explicit resync)."""
        self._ensure_unlocked(score)

        result = await self.db.execute(
            select(Commit)
            .where(Commit.event_id == score.event_id, Commit.user_id == score.user_id)
            .order_by(Commit.timestamp)
        )
        commits = list(result.scalars().all())

        score.total_commits = len(commits)
        score.valid_commits = 0
        score.total_score = score.bonus_score
        score.base_score = score.quality_score = score.timing_score = 0
        score.total_additions = score.total_deletions = score.total_files_changed = 0
        for commit in commits:
            if commit.counts_toward_score:
                score.valid_commits += 1
                self._add_contribution(score, ScoringService.current_score(commit))
                self._add_diff(score, commit)

        await self._refresh_average_quality(score)
        score.last_updated = utcnow()
        await self.recalculate_ranks(score.event_id)
        logger.info("Score rebuilt", event_id=score.event_id, user_id=score.user_id)
        return score

    async def get_leaderboard(self, event_id: int, limit: int | None = None) -> list[Score]:
        query = (
            select(Score)
            .options(joinedload(Score.user), joinedload(Score.repository))
            .where(Score.event_id == event_id)
            .order_by(Score.total_score.desc(), Score.id)
        )
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().unique().all())

    async def get_user_score(self, event_id: int, user_id: int) -> Score | None:
        result = await self.db.execute(
            select(Score)
            .options(joinedload(Score.user), joinedload(Score.repository))
            .where(Score.event_id == event_id, Score.user_id == user_id)
        )
        return result.scalars().unique().one_or_none()
