import pytest

from hackpulse.core.config import Settings
from hackpulse.db.models.commit import CommitCategory, Complexity
from hackpulse.services.ai_service import (
    AIClassifier,
    QualityReport,
    build_prompt,
    fallback_analysis,
    normalize_analysis,
)


class TestFallbackAnalysis:
    """The local heuristic must answer for any input."""

    @pytest.mark.parametrize(
        "message,stats",
        [
            (None, None),
            ("", {}),
            (12345, "not a dict"),
            (["a", "list"], {"additions": "lots", "deletions": None}),
            ("x" * 100_000, {"additions": float("inf"), "deletions": -5}),
            ("feat: add things", {"additions": 10**30, "files_changed": object()}),
        ],
    )
    def test_never_raises(self, message, stats) -> None:
        report = fallback_analysis(message, stats)
        assert isinstance(report, QualityReport)
        assert 0 <= report.quality_score <= 100

    def test_meaningful_commit(self) -> None:
        report = fallback_analysis(
            "Implement login feature",
            {"additions": 50, "deletions": 10, "files_changed": 3},
        )
        assert report.is_spam is False
        # 50 + 20 (not spam) + 10 (long message) + 10 (mid-size diff) + 10 (few files)
        assert report.quality_score == 100
        assert report.category == CommitCategory.FEATURE
        assert report.complexity == Complexity.MEDIUM

    @pytest.mark.parametrize("message", ["wip", "WIP", "fix", "test", "asdf", "short"])
    def test_low_signal_messages_are_spam(self, message) -> None:
        report = fallback_analysis(message, {"additions": 1, "deletions": 0})
        assert report.is_spam is True
        assert report.quality_score == 50
        assert report.complexity == Complexity.LOW

    @pytest.mark.parametrize(
        "message,category",
        [
            ("Fix crash when saving profile", CommitCategory.BUGFIX),
            ("Refactor the session store", CommitCategory.REFACTOR),
            ("Update README with setup steps", CommitCategory.DOCS),
            ("Cover parser edge cases in spec", CommitCategory.TEST),
            ("Bump dependency versions", CommitCategory.OTHER),
        ],
    )
    def test_category_by_keyword(self, message, category) -> None:
        assert fallback_analysis(message, {}).category == category

    def test_large_change_is_high_complexity(self) -> None:
        report = fallback_analysis("Rewrite the rendering pipeline", {"additions": 900})
        assert report.complexity == Complexity.HIGH

    def test_camel_case_stats(self) -> None:
        report = fallback_analysis(
            "Implement login feature",
            {"additions": 50, "deletions": 10, "filesChanged": 3},
        )
        assert report.quality_score == 100


class TestNormalizeAnalysis:
    def test_provider_response(self) -> None:
        report = normalize_analysis(
            {
                "qualityScore": 87,
                "isSpam": False,
                "category": "bugfix",
                "complexity": "high",
                "summary": "Fixes race",
                "suggestions": ["a", "b", "c", "d", "e", "f"],
                "technologies": ["python"],
            }
        )
        assert report.quality_score == 87
        assert report.category == CommitCategory.BUGFIX
        assert report.complexity == Complexity.HIGH
        assert len(report.suggestions) == 5

    def test_out_of_range_and_unknown_values(self) -> None:
        report = normalize_analysis(
            {"qualityScore": 150, "category": "poetry", "complexity": ["x"], "suggestions": "nope"}
        )
        assert report.quality_score == 100
        assert report.category == CommitCategory.OTHER
        assert report.complexity == Complexity.MEDIUM
        assert report.suggestions == []

    def test_unparseable_score_uses_default(self) -> None:
        assert normalize_analysis({"qualityScore": "great"}).quality_score == 50
        assert normalize_analysis({"qualityScore": -3}).quality_score == 0


def test_prompt_lists_at_most_twenty_files() -> None:
    files = [{"filename": f"src/file{i}.py", "status": "modified"} for i in range(25)]
    prompt = build_prompt("Add feature", {"additions": 3}, files)
    assert "src/file19.py" in prompt
    assert "src/file20.py" not in prompt
    assert "... and 5 more files" in prompt


class TestClassifier:
    async def test_unconfigured_provider_falls_back(self) -> None:
        classifier = AIClassifier(Settings(ai_provider="openai", openai_api_key=None))
        assert classifier.configured is False

        report = await classifier.classify("Implement login feature", {"additions": 60})
        assert report == fallback_analysis("Implement login feature", {"additions": 60})

    def test_provider_info(self) -> None:
        classifier = AIClassifier(Settings(ai_provider="groq", groq_api_key="k"))
        info = classifier.provider_info()
        assert info["provider"] == "groq"
        assert info["configured"] is True
