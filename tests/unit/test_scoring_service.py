import pytest

from hackpulse.core.config import Settings
from hackpulse.db.models.commit import Commit
from hackpulse.services.scoring_service import CommitScore, ScoringService


@pytest.fixture
def scoring() -> ScoringService:
    return ScoringService(Settings())


class TestScoringCalculation:
    """Tests for per-commit score calculation."""

    def test_score_before_classification(self, scoring: ScoringService) -> None:
        """+50/-10 on time, no AI yet: base 6, timing 10, total 16."""
        score = scoring.calculate_commit_score(additions=50, deletions=10)
        assert score == CommitScore(base=6, quality=0, timing=10, total=16)

    def test_base_is_capped(self, scoring: ScoringService) -> None:
        score = scoring.calculate_commit_score(additions=4000, deletions=2000)
        assert score.base == 50
        assert score.total == 60

    def test_late_commit_gets_no_timing_bonus(self, scoring: ScoringService) -> None:
        score = scoring.calculate_commit_score(additions=50, deletions=10, is_late=True)
        assert score.timing == 0
        assert score.total == 6

    def test_quality_weight(self, scoring: ScoringService) -> None:
        score = scoring.calculate_commit_score(additions=50, deletions=10, ai_quality_score=80)
        assert score.quality == 40
        assert score.total == 56

    def test_spam_penalty_floors_at_zero(self, scoring: ScoringService) -> None:
        score = scoring.calculate_commit_score(additions=2, deletions=0, ai_quality_score=20, is_spam=True)
        # 0.2 + 10 + 10 - 30 < 0
        assert score.total == 0

    def test_total_rounds_unrounded_sum(self, scoring: ScoringService) -> None:
        """Components round half-up on their own; total rounds the raw sum once."""
        score = scoring.calculate_commit_score(additions=5, deletions=0, ai_quality_score=45)
        assert score.base == 1  # 0.5
        assert score.quality == 23  # 22.5
        assert score.total == 33  # round(0.5 + 22.5 + 10)

    def test_negative_stats_are_ignored(self, scoring: ScoringService) -> None:
        score = scoring.calculate_commit_score(additions=-100, deletions=-5)
        assert score.base == 0
        assert score.total == 10

    def test_custom_weights_from_settings(self) -> None:
        scoring = ScoringService(Settings(timing_bonus=5, base_score_cap=10))
        score = scoring.calculate_commit_score(additions=500, deletions=0)
        assert score == CommitScore(base=10, quality=0, timing=5, total=15)


class TestScoreCommit:
    """Tests for scoring stored commit rows."""

    def test_quality_ignored_until_processed(self, scoring: ScoringService) -> None:
        commit = Commit(
            additions=50,
            deletions=10,
            is_late_submission=False,
            ai_processed=False,
            ai_quality_score=90,
            ai_is_spam=False,
        )
        score = scoring.score_commit(commit)
        assert score.total == 16
        assert commit.score_total == 16
        assert commit.score_quality == 0

    def test_rescore_after_classification(self, scoring: ScoringService) -> None:
        commit = Commit(
            additions=50,
            deletions=10,
            is_late_submission=False,
            ai_processed=True,
            ai_quality_score=90,
            ai_is_spam=False,
        )
        scoring.score_commit(commit)
        assert (commit.score_base, commit.score_quality, commit.score_timing) == (6, 45, 10)
        assert commit.score_total == 61
        assert ScoringService.current_score(commit) == CommitScore(6, 45, 10, 61)
