"""Test configuration and fixtures.

Unit tests need none of these. Integration fixtures build an ``AppContext``
on a throwaway SQLite database, with fakes standing in for GitHub, the AI
provider and Discord.
"""

import hashlib
import hmac
import json
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import update

from hackpulse.core.config import Settings
from hackpulse.core.context import AppContext
from hackpulse.db.models.event import Event
from hackpulse.services.ai_service import QualityReport, fallback_analysis
from hackpulse.services.commit_normalizer import CommitAuthor, CommitPayload, DiffStats
from hackpulse.services.notification_service import NotificationService
from hackpulse.services.user_service import UserService

WEBHOOK_SECRET = "test-secret"
EVENT_START = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register integration test marker."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test requiring database"
    )


class FakeGitHub:
    """Stands in for ``GitHubService``; unknown commits fail like a network error."""

    def __init__(self) -> None:
        self.details: dict[str, dict] = {}
        self.listing: list[dict] = []
        self.hooks: list[tuple[str, str, str]] = []
        self.repos: dict[str, dict] = {}
        self.branches: list[str | None] = []

    async def get_repository(self, owner: str, name: str) -> dict | None:
        return self.repos.get(f"{owner}/{name}")

    async def fetch_commit_details(self, owner: str, name: str, sha: str) -> dict:
        if sha not in self.details:
            raise httpx.ConnectError("GitHub unreachable")
        return self.details[sha]

    async def fetch_commits_since(self, owner, name, since=None, until=None, branch=None, limit=100):
        self.branches.append(branch)
        return self.listing[:limit]

    async def register_webhook(self, owner: str, name: str, url: str) -> dict:
        self.hooks.append((owner, name, url))
        return {"id": 4242, "url": url, "active": True, "events": ["push"]}


class FakeClassifier:
    """Stands in for ``AIClassifier``; returns a queued report or the fallback."""

    provider = "fake"

    def __init__(self) -> None:
        self.reports: list[QualityReport] = []
        self.calls = 0

    async def classify(self, message, stats, files=None) -> QualityReport:
        self.calls += 1
        if self.reports:
            return self.reports.pop(0)
        return fallback_analysis(message, stats)

    def provider_info(self) -> dict:
        return {"provider": self.provider, "model": "fake", "configured": True}

    async def close(self) -> None:
        pass


class RecordingNotifier(NotificationService):
    def __init__(self) -> None:
        super().__init__(None)
        self.sent: list[str] = []

    def _send(self, title, description, color, fields=None) -> None:
        self.sent.append(title)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'hackpulse.db'}",
        github_webhook_secret=WEBHOOK_SECRET,
        discord_webhook_url=None,
        ai_analysis_delay=0,
        expiry_watcher_enabled=False,
    )


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
async def context(settings, github, classifier, notifier) -> AsyncGenerator[AppContext, None]:
    ctx = AppContext.create(settings, github=github, classifier=classifier, notifier=notifier)
    await ctx.startup(start_background=False)
    yield ctx
    await ctx.shutdown()


@pytest.fixture
async def client(settings, context) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client against the app, sharing the test context."""
    from hackpulse.api.app import create_app

    app = create_app(settings, context=context, start_background=False)
    app.state.context = context

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


async def create_event(context: AppContext, max_participants: int = 2, duration_hours: int = 1) -> int:
    async with context.session_maker() as db, db.begin():
        event = await context.events(db).create_event(
            name="Spring Hack",
            max_participants=max_participants,
            duration_hours=duration_hours,
        )
        return event.id


async def join(context: AppContext, event_id: int, username: str, github_url: str) -> tuple[int, int]:
    """Join as ``username``; returns (user_id, repo_id)."""
    async with context.session_maker() as db, db.begin():
        user = await UserService(db).get_or_create(username)
        _, repository, _ = await context.events(db).join_event(event_id, user, github_url)
        return user.id, repository.id


async def start(context: AppContext, event_id: int, at: datetime | None = EVENT_START) -> None:
    """Start the event, then pin its window to ``at`` for deterministic timing."""
    async with context.session_maker() as db, db.begin():
        event = await context.events(db).start_event(event_id)
        if at is not None:
            await db.execute(
                update(Event)
                .where(Event.id == event_id)
                .values(start_time=at, end_time=at + timedelta(hours=event.duration_hours))
            )


def make_payload(
    sha: str,
    timestamp: datetime,
    message: str = "Implement login feature",
    additions: int = 50,
    deletions: int = 10,
    files_changed: int = 3,
) -> CommitPayload:
    return CommitPayload(
        sha=sha,
        message=message,
        timestamp=timestamp,
        url=f"https://github.com/a/x/commit/{sha}",
        author=CommitAuthor(name="Alice", email="alice@example.com", username="alice"),
        stats=DiffStats(additions=additions, deletions=deletions, files_changed=files_changed),
    )


def sign(body: dict) -> tuple[bytes, str]:
    raw = json.dumps(body).encode()
    digest = hmac.new(WEBHOOK_SECRET.encode(), raw, hashlib.sha256).hexdigest()
    return raw, f"sha256={digest}"


@pytest.fixture
async def running_event(context) -> dict:
    """Event with one participant (alice, a/x), running since EVENT_START."""
    event_id = await create_event(context)
    user_id, repo_id = await join(context, event_id, "alice", "https://github.com/a/x")
    await start(context, event_id)
    return {"event_id": event_id, "user_id": user_id, "repo_id": repo_id}
