import json
import re
from typing import Any

import structlog
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from hackpulse.core.config import Settings
from hackpulse.db.models.commit import CommitCategory, Complexity

logger = structlog.get_logger()

PROVIDER_BASE_URLS = {
    "openai": None,
    "groq": "https://api.groq.com/openai/v1",
    "openrouter": "https://openrouter.ai/api/v1",
}

PROVIDER_MODELS = {
    "openai": "gpt-4o-mini",
    "groq": "llama-3.1-70b-versatile",
    "openrouter": "tngtech/deepseek-r1t2-chimera:free",
}

SYSTEM_PROMPT = (
    "You are a code review expert. Analyze commits and provide structured "
    "feedback in JSON format."
)

SPAM_MESSAGE = re.compile(r"^(test|asdf|aaa|111|fix|update|change|temp|wip)$", re.IGNORECASE)
CATEGORY_KEYWORDS = [
    (CommitCategory.FEATURE, re.compile(r"feat|feature|add", re.IGNORECASE)),
    (CommitCategory.BUGFIX, re.compile(r"fix|bug", re.IGNORECASE)),
    (CommitCategory.REFACTOR, re.compile(r"refactor|improve|optimize", re.IGNORECASE)),
    (CommitCategory.DOCS, re.compile(r"doc|readme", re.IGNORECASE)),
    (CommitCategory.TEST, re.compile(r"test|spec", re.IGNORECASE)),
]
MAX_PROMPT_FILES = 20


class QualityReport(BaseModel):
    quality_score: int = Field(default=0, ge=0, le=100)
    is_spam: bool = False
    category: CommitCategory = CommitCategory.OTHER
    complexity: Complexity = Complexity.MEDIUM
    summary: str | None = None
    feedback: str | None = None
    suggestions: list[str] = Field(default_factory=list)
    technologies: list[str] = Field(default_factory=list)


class ClassifierUnavailable(Exception):
    """Raised when no AI provider is configured."""


def _as_int(value: Any) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def _stat(stats: Any, *keys: str) -> int:
    if isinstance(stats, dict):
        for key in keys:
            if key in stats:
                return _as_int(stats[key])
        return 0
    for key in keys:
        if hasattr(stats, key):
            return _as_int(getattr(stats, key))
    return 0


def _clamp_score(value: Any, default: int = 50) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        score = default
    return min(100, max(0, score))


def fallback_analysis(message: Any, stats: Any = None) -> QualityReport:
    """Local heuristic used whenever the AI provider cannot answer.

    Must return a well-formed report for any input.
    """
    text = message if isinstance(message, str) else ("" if message is None else str(message))
    text = text.strip()
    additions = _stat(stats, "additions")
    deletions = _stat(stats, "deletions")
    files_changed = _stat(stats, "files_changed", "filesChanged")
    total_changes = additions + deletions

    is_spam = bool(SPAM_MESSAGE.match(text)) or len(text) < 10

    category = CommitCategory.OTHER
    for candidate, pattern in CATEGORY_KEYWORDS:
        if pattern.search(text):
            category = candidate
            break

    quality = 50
    if not is_spam:
        quality += 20
    if len(text) > 20:
        quality += 10
    if 20 < total_changes < 500:
        quality += 10
    if 1 < files_changed < 10:
        quality += 10

    if total_changes < 10:
        complexity = Complexity.LOW
    elif total_changes > 500:
        complexity = Complexity.HIGH
    else:
        complexity = Complexity.MEDIUM

    return QualityReport(
        quality_score=_clamp_score(quality),
        is_spam=is_spam,
        category=category,
        complexity=complexity,
        summary="Low quality commit" if is_spam else "Code changes committed",
        feedback=(
            "Write more descriptive commit messages and make meaningful changes"
            if is_spam
            else "Consider adding more detailed commit message"
        ),
        suggestions=[
            "Write clear, descriptive commit messages",
            "Break large changes into smaller commits",
            "Follow conventional commit format",
        ],
        technologies=[],
    )


def normalize_analysis(data: dict) -> QualityReport:
    """Coerce a provider response into a ``QualityReport``."""
    category = data.get("category")
    complexity = data.get("complexity")
    suggestions = data.get("suggestions")
    technologies = data.get("technologies")
    return QualityReport(
        quality_score=_clamp_score(data.get("qualityScore", data.get("quality_score"))),
        is_spam=bool(data.get("isSpam", data.get("is_spam", False))),
        category=(
            category
            if isinstance(category, str) and category in CommitCategory._value2member_map_
            else CommitCategory.OTHER
        ),
        complexity=(
            complexity
            if isinstance(complexity, str) and complexity in Complexity._value2member_map_
            else Complexity.MEDIUM
        ),
        summary=str(data.get("summary") or "No summary provided")[:500],
        feedback=str(data.get("feedback") or "No feedback provided")[:1000],
        suggestions=(
            [str(s)[:200] for s in suggestions[:5]] if isinstance(suggestions, list) else []
        ),
        technologies=(
            [str(t)[:50] for t in technologies[:10]] if isinstance(technologies, list) else []
        ),
    )


def build_prompt(message: str, stats: Any, files: list[dict] | None) -> str:
    files = files or []
    lines = [
        f"- {f.get('filename')} ({f.get('status')}, +{f.get('additions', 0)}/-{f.get('deletions', 0)})"
        for f in files[:MAX_PROMPT_FILES]
    ]
    if len(files) > MAX_PROMPT_FILES:
        lines.append(f"... and {len(files) - MAX_PROMPT_FILES} more files")
    files_text = "\n".join(lines)

    return f"""Analyze this Git commit and provide a JSON response with the following structure:

{{
  "qualityScore": 0-100,
  "isSpam": boolean,
  "category": "feature|bugfix|refactor|docs|test|chore|other",
  "summary": "brief description",
  "feedback": "constructive feedback",
  "suggestions": ["suggestion1", "suggestion2"],
  "technologies": ["tech1", "tech2"],
  "complexity": "low|medium|high"
}}

Commit Message:
{message}

Statistics:
- Additions: {_stat(stats, "additions")}
- Deletions: {_stat(stats, "deletions")}
- Files Changed: {_stat(stats, "files_changed", "filesChanged")}

Files:
{files_text}

Scoring Guidelines:
- Quality Score (0-100): Code quality, commit message clarity, meaningful changes
- Is Spam: Detect meaningless commits like "test", "asdf", minimal changes
- Category: Classify the type of work done
- Summary: 1-2 sentence description of what was done
- Feedback: Constructive advice for improvement
- Suggestions: 2-3 specific recommendations
- Technologies: Programming languages/frameworks used
- Complexity: Based on scope and difficulty

Be critical but fair. Focus on meaningful contributions."""


class AIClassifier:
    """Commit quality classifier backed by an OpenAI-compatible provider."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.provider = settings.ai_provider
        self.model = settings.ai_model or PROVIDER_MODELS.get(self.provider, "gpt-4o-mini")
        self._client: AsyncOpenAI | None = None

    def _api_key(self) -> str | None:
        return {
            "openai": self.settings.openai_api_key,
            "groq": self.settings.groq_api_key,
            "openrouter": self.settings.openrouter_api_key,
        }.get(self.provider)

    @property
    def configured(self) -> bool:
        return self.provider in PROVIDER_BASE_URLS and bool(self._api_key())

    def _get_client(self) -> AsyncOpenAI:
        if not self.configured:
            raise ClassifierUnavailable(f"AI provider {self.provider!r} is not configured")
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self._api_key(),
                base_url=PROVIDER_BASE_URLS[self.provider],
                timeout=self.settings.ai_request_timeout,
            )
        return self._client

    async def analyze(self, message: str, stats: Any, files: list[dict] | None) -> QualityReport:
        """Ask the provider for a report. Raises on any provider failure."""
        client = self._get_client()
        response = await client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(message, stats, files)},
            ],
            temperature=0.3,
            max_tokens=1000,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content or ""
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError("AI response is not a JSON object")
        return normalize_analysis(data)

    async def classify(
        self,
        message: str,
        stats: Any,
        files: list[dict] | None = None,
    ) -> QualityReport:
        """Classify a commit, falling back to the local heuristic on failure."""
        try:
            report = await self.analyze(message, stats, files)
        except Exception as exc:
            logger.warning(
                "AI classification failed, using fallback",
                provider=self.provider,
                error=str(exc),
            )
            return fallback_analysis(message, stats)

        logger.info(
            "AI classification complete",
            provider=self.provider,
            quality=report.quality_score,
            category=report.category.value,
            is_spam=report.is_spam,
        )
        return report

    def provider_info(self) -> dict:
        return {
            "provider": self.provider,
            "model": self.model,
            "configured": self.configured,
        }

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
