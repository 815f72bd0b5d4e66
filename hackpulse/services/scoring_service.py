from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from hackpulse.core.config import Settings, settings as default_settings


@dataclass(frozen=True)
class CommitScore:
    base: int = 0
    quality: int = 0
    timing: int = 0
    total: int = 0


def _round(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class ScoringService:
    """Deterministic per-commit scoring, computable with or without AI results."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or default_settings

    def calculate_commit_score(
        self,
        additions: int = 0,
        deletions: int = 0,
        is_late: bool = False,
        ai_quality_score: int | float = 0,
        is_spam: bool = False,
    ) -> CommitScore:
        """Score a single commit.

        base    = min((additions + deletions) / 10, cap)
        quality = ai quality * weight (0 until classified)
        timing  = bonus unless the commit is late
        total   = max(0, round(base + quality + timing - spam penalty))

        The stored ``base`` and ``quality`` components are rounded; ``total``
        is rounded once from the unrounded sum.
        """
        changed = Decimal(max(additions, 0) + max(deletions, 0))
        base = min(changed / Decimal(10), Decimal(self.settings.base_score_cap))
        quality = Decimal(str(ai_quality_score)) * Decimal(str(self.settings.quality_weight))
        timing = Decimal(0) if is_late else Decimal(self.settings.timing_bonus)
        penalty = Decimal(self.settings.spam_penalty) if is_spam else Decimal(0)

        total = max(0, _round(base + quality + timing - penalty))

        return CommitScore(
            base=_round(base),
            quality=_round(quality),
            timing=int(timing),
            total=total,
        )

    def score_commit(self, commit) -> CommitScore:
        """Recompute and store the score of a ``Commit`` row in place."""
        score = self.calculate_commit_score(
            additions=commit.additions,
            deletions=commit.deletions,
            is_late=commit.is_late_submission,
            ai_quality_score=commit.ai_quality_score if commit.ai_processed else 0,
            is_spam=commit.ai_is_spam,
        )
        commit.score_base = score.base
        commit.score_quality = score.quality
        commit.score_timing = score.timing
        commit.score_total = score.total
        return score

    @staticmethod
    def current_score(commit) -> CommitScore:
        return CommitScore(
            base=commit.score_base,
            quality=commit.score_quality,
            timing=commit.score_timing,
            total=commit.score_total,
        )
