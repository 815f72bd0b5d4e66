from datetime import datetime, timedelta, timezone

import pytest

from hackpulse.db.models.event import Event
from hackpulse.services.commit_normalizer import (
    CommitFile,
    CommitPayload,
    WindowCheck,
    build_flags,
    evaluate_window,
    from_github_detail,
    from_github_listing,
    from_webhook,
    validate_commit_rules,
)

START = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)
END = START + timedelta(hours=1)

GITHUB_COMMIT = {
    "sha": "c0ffee" * 6 + "beef",
    "html_url": "https://github.com/a/x/commit/c0ffee",
    "author": {"login": "alice", "avatar_url": "https://avatars.example/alice"},
    "commit": {
        "message": "Add OAuth callback",
        "author": {"name": "Alice", "email": "alice@example.com", "date": "2026-01-10T12:30:00Z"},
    },
}


@pytest.fixture
def event() -> Event:
    return Event(name="Spring Hack", start_time=START, end_time=END, allowed_languages=[], require_tests=False)


class TestPayloadShapes:
    def test_from_webhook(self) -> None:
        payload = from_webhook(
            {
                "id": "abc1234",
                "message": "Implement login feature",
                "timestamp": "2026-01-10T13:01:00+01:00",
                "url": "https://github.com/a/x/commit/abc1234",
                "author": {"name": "Alice", "email": "alice@example.com", "username": "alice"},
                "added": ["login.py"],
                "removed": [],
                "modified": ["app.py", "urls.py"],
            }
        )
        assert payload.sha == "abc1234"
        assert payload.timestamp == datetime(2026, 1, 10, 12, 1, tzinfo=timezone.utc)
        assert payload.author.username == "alice"
        assert payload.stats.files_changed == 3
        assert payload.total_changes == 0

    def test_from_webhook_requires_id(self) -> None:
        with pytest.raises(KeyError):
            from_webhook({"message": "no id", "timestamp": "2026-01-10T12:00:00Z"})

    def test_from_github_listing(self) -> None:
        payload = from_github_listing(GITHUB_COMMIT)
        assert payload.message == "Add OAuth callback"
        assert payload.author.avatar == "https://avatars.example/alice"
        assert payload.timestamp.tzinfo is not None

    def test_from_github_detail(self) -> None:
        payload = from_github_detail(
            {
                **GITHUB_COMMIT,
                "stats": {"additions": 120, "deletions": 30, "total": 150},
                "files": [
                    {"filename": "auth/oauth.py", "status": "added", "additions": 100, "deletions": 0, "changes": 100},
                    {"filename": "tests/test_oauth.py", "status": "added", "additions": 20, "deletions": 30, "changes": 50},
                ],
            }
        )
        assert payload.stats.additions == 120
        assert payload.total_changes == 150
        assert payload.stats.files_changed == 2
        assert [f.filename for f in payload.files] == ["auth/oauth.py", "tests/test_oauth.py"]

    def test_details_keep_inbound_identity(self) -> None:
        inbound = CommitPayload(sha="abc1234", message="Add OAuth callback", timestamp=START)
        details = from_github_detail({**GITHUB_COMMIT, "stats": {"additions": 5, "deletions": 1}, "files": []})
        merged = inbound.with_details(details)
        assert merged.sha == "abc1234"
        assert merged.timestamp == START
        assert merged.stats.additions == 5
        assert merged.author.username == "alice"

    def test_naive_timestamp_is_utc(self) -> None:
        payload = CommitPayload(sha="abc1234", timestamp=datetime(2026, 1, 10, 12, 0))
        assert payload.timestamp == START


class TestWindow:
    def test_inside_window(self, event: Event) -> None:
        assert evaluate_window(START + timedelta(minutes=1), event) == WindowCheck.ACCEPT

    def test_boundaries_are_inside(self, event: Event) -> None:
        assert evaluate_window(START, event) == WindowCheck.ACCEPT
        assert evaluate_window(END, event) == WindowCheck.ACCEPT

    def test_before_start(self, event: Event) -> None:
        assert evaluate_window(START - timedelta(seconds=1), event) == WindowCheck.BEFORE_START

    def test_after_end_is_late(self, event: Event) -> None:
        assert evaluate_window(START + timedelta(hours=2), event) == WindowCheck.LATE

    def test_event_not_started(self) -> None:
        assert evaluate_window(START, Event(name="Later")) == WindowCheck.BEFORE_START


class TestFlags:
    def _payload(self, additions: int, deletions: int = 0) -> CommitPayload:
        return CommitPayload(
            sha="abc1234",
            timestamp=START,
            stats={"additions": additions, "deletions": deletions},
        )

    def test_first_on_time_commit(self) -> None:
        flags = build_flags(self._payload(10), WindowCheck.ACCEPT, 0, 1000)
        assert flags.is_first_commit is True
        assert flags.is_late_submission is False
        assert flags.is_valid is True

    def test_late_commit_is_invalid(self) -> None:
        flags = build_flags(self._payload(10), WindowCheck.LATE, 3, 1000)
        assert flags.is_late_submission is True
        assert flags.is_valid is False
        assert flags.is_first_commit is False

    def test_large_commit_threshold(self) -> None:
        assert build_flags(self._payload(600, 400), WindowCheck.ACCEPT, 1, 1000).is_large_commit is False
        assert build_flags(self._payload(600, 401), WindowCheck.ACCEPT, 1, 1000).is_large_commit is True


class TestCommitRules:
    def test_no_rules(self, event: Event) -> None:
        assert validate_commit_rules([CommitFile(filename="main.go")], event) == []

    def test_language_rule(self, event: Event) -> None:
        event.allowed_languages = ["py"]
        assert validate_commit_rules([CommitFile(filename="app.js")], event) == [
            "No allowed language files in commit"
        ]
        assert validate_commit_rules([CommitFile(filename="app.py")], event) == []

    def test_test_rule(self, event: Event) -> None:
        event.require_tests = True
        assert validate_commit_rules([CommitFile(filename="app.py")], event) == ["No test files found"]
        assert validate_commit_rules([CommitFile(filename="tests/test_app.py")], event) == []
