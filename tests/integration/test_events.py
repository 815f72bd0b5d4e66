from datetime import timedelta

import httpx
import pytest
from sqlalchemy import func, select

from hackpulse.core.exceptions import (
    HackPulseError,
    JoinRejectedError,
    NotFoundError,
    StateTransitionError,
)
from hackpulse.db.models.commit import Commit
from hackpulse.db.models.event import Event, EventParticipant, EventStatus
from hackpulse.db.models.repository import Repository
from hackpulse.db.models.score import Achievement, Score
from hackpulse.services.ai_service import QualityReport
from hackpulse.services.user_service import UserService
from tests.conftest import EVENT_START, create_event, join, make_payload, start

pytestmark = pytest.mark.integration


async def load_event(context, event_id: int) -> Event:
    async with context.session_maker() as db:
        return await context.events(db).get_event(event_id)


async def count(context, column) -> int:
    async with context.session_maker() as db:
        return (await db.execute(select(func.count(column)))).scalar()


class TestCreateEvent:
    async def test_new_event_is_waiting(self, context) -> None:
        event_id = await create_event(context, max_participants=5, duration_hours=24)

        event = await load_event(context, event_id)
        assert event.status == EventStatus.WAITING
        assert event.current_participants == 0
        assert event.total_commits == 0
        assert event.start_time is None
        assert event.end_time is None
        assert event.remaining_slots == 5

    @pytest.mark.parametrize(
        "max_participants,duration_hours",
        [(0, 24), (1001, 24), (10, 0), (10, 721)],
    )
    async def test_bounds_are_enforced(self, context, max_participants, duration_hours) -> None:
        with pytest.raises(HackPulseError):
            async with context.session_maker() as db, db.begin():
                await context.events(db).create_event("Bad", max_participants, duration_hours)

        assert await count(context, Event.id) == 0

    async def test_list_filters_by_status(self, context) -> None:
        waiting = await create_event(context)
        running = await create_event(context)
        await join(context, running, "alice", "https://github.com/a/x")
        await start(context, running)

        async with context.session_maker() as db:
            events, total = await context.events(db).list_events(EventStatus.WAITING)
            everything, all_total = await context.events(db).list_events()

        assert [e.id for e in events] == [waiting]
        assert total == 1
        assert all_total == 2
        assert {e.id for e in everything} == {waiting, running}

    async def test_missing_event(self, context) -> None:
        async with context.session_maker() as db:
            with pytest.raises(NotFoundError):
                await context.events(db).get_event(999)


class TestJoinEvent:
    async def test_join_registers_participant(self, context) -> None:
        event_id = await create_event(context)

        user_id, repo_id = await join(context, event_id, "alice", "https://github.com/Alice/Project.git")

        event = await load_event(context, event_id)
        assert event.current_participants == 1
        assert [p.user_id for p in event.participants] == [user_id]

        async with context.session_maker() as db:
            repository = await db.get(Repository, repo_id)
            score = await context.scores(db).get_score(event_id, user_id)
            user = await UserService(db).get_user(user_id)
        assert repository.full_name == "Alice/Project"
        assert repository.github_url == "https://github.com/alice/project"
        assert score.total_score == 0
        assert score.is_locked is False
        assert user.total_events == 1

    async def test_join_full_event(self, context) -> None:
        event_id = await create_event(context, max_participants=1)
        await join(context, event_id, "alice", "https://github.com/a/x")

        with pytest.raises(JoinRejectedError, match="full"):
            await join(context, event_id, "bob", "https://github.com/b/y")

        assert (await load_event(context, event_id)).current_participants == 1

    async def test_join_twice(self, context) -> None:
        event_id = await create_event(context)
        await join(context, event_id, "alice", "https://github.com/a/x")

        with pytest.raises(JoinRejectedError, match="already joined"):
            await join(context, event_id, "alice", "https://github.com/a/other")

    async def test_repository_taken(self, context) -> None:
        event_id = await create_event(context)
        await join(context, event_id, "alice", "https://github.com/a/x")

        with pytest.raises(JoinRejectedError, match="already registered"):
            await join(context, event_id, "bob", "https://github.com/a/x/")

        assert (await load_event(context, event_id)).current_participants == 1

    async def test_repository_match_ignores_case(self, context) -> None:
        event_id = await create_event(context)
        await join(context, event_id, "alice", "https://github.com/a/x")

        with pytest.raises(JoinRejectedError, match="already registered"):
            await join(context, event_id, "bob", "https://github.com/A/X")

        assert (await load_event(context, event_id)).current_participants == 1

    async def test_same_repository_in_another_event(self, context) -> None:
        first = await create_event(context)
        second = await create_event(context)
        await join(context, first, "alice", "https://github.com/a/x")

        await join(context, second, "alice", "https://github.com/a/x")

        assert (await load_event(context, second)).current_participants == 1

    async def test_invalid_url(self, context) -> None:
        event_id = await create_event(context)

        with pytest.raises(JoinRejectedError, match="Invalid GitHub repository URL"):
            await join(context, event_id, "alice", "https://gitlab.com/a/x")

        assert await count(context, Repository.id) == 0

    async def test_join_running_event(self, context, running_event) -> None:
        with pytest.raises(JoinRejectedError, match="already started"):
            await join(context, running_event["event_id"], "bob", "https://github.com/b/y")

    async def test_participant_count_matches_rows(self, context) -> None:
        event_id = await create_event(context, max_participants=3)
        for name in ("alice", "bob", "carol", "dave"):
            try:
                await join(context, event_id, name, f"https://github.com/{name}/repo")
            except JoinRejectedError:
                pass

        event = await load_event(context, event_id)
        assert event.current_participants == 3
        assert len(event.participants) == 3
        assert await count(context, Repository.id) == 3


class TestStartEvent:
    async def test_start_sets_window(self, context, notifier) -> None:
        event_id = await create_event(context, duration_hours=2)
        await join(context, event_id, "alice", "https://github.com/a/x")

        await start(context, event_id, at=None)

        event = await load_event(context, event_id)
        assert event.status == EventStatus.RUNNING
        assert event.end_time - event.start_time == timedelta(hours=2)
        assert len(notifier.sent) == 1

    async def test_start_without_participants(self, context) -> None:
        event_id = await create_event(context)

        with pytest.raises(StateTransitionError, match="no participants"):
            await start(context, event_id)

        assert (await load_event(context, event_id)).status == EventStatus.WAITING

    async def test_start_twice(self, context, running_event) -> None:
        before = await load_event(context, running_event["event_id"])

        with pytest.raises(StateTransitionError, match="already"):
            await start(context, running_event["event_id"])

        after = await load_event(context, running_event["event_id"])
        assert after.start_time == before.start_time == EVENT_START


class TestFinishEvent:
    async def _finish(self, context, event_id: int) -> Event:
        async with context.session_maker() as db, db.begin():
            return await context.events(db).finish_event(event_id)

    async def test_finish_locks_scores(self, context, running_event) -> None:
        await context.intake.process_commit("a/x", make_payload("a" * 40, EVENT_START + timedelta(minutes=1)))

        event = await self._finish(context, running_event["event_id"])

        assert event.status == EventStatus.FINISHED
        async with context.session_maker() as db:
            score = await context.scores(db).get_score(running_event["event_id"], running_event["user_id"])
        assert score.is_locked is True
        assert score.rank == 1

    async def test_commits_after_finish_are_skipped(self, context, running_event) -> None:
        await self._finish(context, running_event["event_id"])

        result = await context.intake.process_commit(
            "a/x", make_payload("a" * 40, EVENT_START + timedelta(minutes=5))
        )

        assert result.reason.startswith("Event is not running")
        assert await count(context, Commit.id) == 0

    async def test_finish_waiting_event(self, context) -> None:
        event_id = await create_event(context)
        with pytest.raises(StateTransitionError):
            await self._finish(context, event_id)

    async def test_finish_twice(self, context, running_event) -> None:
        await self._finish(context, running_event["event_id"])
        with pytest.raises(StateTransitionError):
            await self._finish(context, running_event["event_id"])


class TestDeleteEvent:
    async def _delete(self, context, event_id: int) -> None:
        async with context.session_maker() as db, db.begin():
            await context.events(db).delete_event(event_id)

    async def test_delete_running_event(self, context, running_event) -> None:
        with pytest.raises(StateTransitionError, match="running"):
            await self._delete(context, running_event["event_id"])

        assert (await load_event(context, running_event["event_id"])).status == EventStatus.RUNNING

    async def test_delete_removes_dependents(self, context, classifier, running_event) -> None:
        result = await context.intake.process_commit(
            "a/x", make_payload("a" * 40, EVENT_START + timedelta(minutes=1))
        )
        classifier.reports.append(QualityReport(quality_score=70))
        await context.intake.analyze_commit(result.commit_id)
        async with context.session_maker() as db, db.begin():
            await context.events(db).finish_event(running_event["event_id"])
        assert await count(context, Achievement.id) == 2

        await self._delete(context, running_event["event_id"])

        for column in (Event.id, EventParticipant.id, Repository.id, Score.id, Commit.id, Achievement.id):
            assert await count(context, column) == 0
        async with context.session_maker() as db:
            assert await UserService(db).get_user(running_event["user_id"])

    async def test_delete_waiting_event(self, context) -> None:
        event_id = await create_event(context)
        await join(context, event_id, "alice", "https://github.com/a/x")

        await self._delete(context, event_id)

        async with context.session_maker() as db:
            with pytest.raises(NotFoundError):
                await context.events(db).get_event(event_id)


class TestWebhookRegistration:
    async def test_register(self, context, github, running_event) -> None:
        async with context.session_maker() as db, db.begin():
            outcome = await context.events(db).register_webhook(running_event["repo_id"])

        assert outcome["success"] is True
        assert outcome["webhook_id"] == "4242"
        assert github.hooks == [("a", "x", "http://localhost:8000/api/v1/github/webhook")]

        async with context.session_maker() as db:
            repository = await db.get(Repository, running_event["repo_id"])
        assert repository.webhook_id == "4242"
        assert repository.webhook_active is True

    async def test_register_failure_is_reported(self, context, github, running_event, monkeypatch) -> None:
        async def refuse(owner, name, url):
            raise httpx.HTTPStatusError(
                "Forbidden",
                request=httpx.Request("POST", url),
                response=httpx.Response(403),
            )

        monkeypatch.setattr(github, "register_webhook", refuse)

        async with context.session_maker() as db, db.begin():
            outcome = await context.events(db).register_webhook(running_event["repo_id"])

        assert outcome["success"] is False
        assert "Forbidden" in outcome["error"]


class TestRepositoryRefresh:
    async def test_refresh_copies_github_details(self, context, github, running_event) -> None:
        github.repos["a/x"] = {
            "full_name": "a/x",
            "description": "Realtime chat",
            "language": "Python",
            "default_branch": "trunk",
        }

        async with context.session_maker() as db, db.begin():
            repository = await context.events(db).refresh_repository(running_event["repo_id"])
        assert repository.default_branch == "trunk"

        async with context.session_maker() as db:
            repository = await db.get(Repository, running_event["repo_id"])
        assert repository.description == "Realtime chat"
        assert repository.language == "Python"
        assert repository.default_branch == "trunk"

    async def test_sync_uses_refreshed_branch(self, context, github, running_event) -> None:
        github.repos["a/x"] = {"default_branch": "develop"}
        async with context.session_maker() as db, db.begin():
            await context.events(db).refresh_repository(running_event["repo_id"])

        await context.intake.sync_repository(running_event["repo_id"])

        assert github.branches == ["develop"]

    async def test_missing_on_github(self, context, running_event) -> None:
        async with context.session_maker() as db, db.begin():
            with pytest.raises(NotFoundError, match="not found on GitHub"):
                await context.events(db).refresh_repository(running_event["repo_id"])

        async with context.session_maker() as db:
            repository = await db.get(Repository, running_event["repo_id"])
        assert repository.default_branch == "main"

    async def test_network_failure(self, context, github, running_event, monkeypatch) -> None:
        async def unreachable(owner, name):
            raise httpx.ConnectError("GitHub unreachable")

        monkeypatch.setattr(github, "get_repository", unreachable)

        async with context.session_maker() as db:
            with pytest.raises(HackPulseError, match="Could not reach GitHub"):
                await context.events(db).refresh_repository(running_event["repo_id"])
