from pydantic import BaseModel


class TechnologyCount(BaseModel):
    technology: str
    count: int


class SuggestionCount(BaseModel):
    suggestion: str
    count: int


class TopCommit(BaseModel):
    sha: str
    message: str
    quality_score: int
    category: str
    user_id: int


class EventInsights(BaseModel):
    total_analyzed: int
    average_quality: float
    categories: dict[str, int]
    complexity: dict[str, int]
    spam_count: int
    spam_percentage: float
    quality_distribution: dict[str, int]
    top_technologies: list[TechnologyCount]
    top_suggestions: list[SuggestionCount]
    top_commits: list[TopCommit]


class InsightsResponse(BaseModel):
    event_id: int
    insights: EventInsights | None
    message: str | None = None


class ReanalyzeResponse(BaseModel):
    event_id: int | None
    analyzed: int
