import asyncio

import httpx
import structlog

logger = structlog.get_logger()

COLOR_INFO = 0x3498DB
COLOR_SUCCESS = 0x2ECC71
COLOR_GOLD = 0xF1C40F


class NotificationService:
    """Fire-and-forget Discord webhook notifications.

    Sends run as background tasks; delivery failures are logged and dropped.
    """

    def __init__(self, webhook_url: str | None, timeout: float = 10.0) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._tasks: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def _send(self, title: str, description: str, color: int, fields: dict | None = None) -> None:
        if not self.enabled:
            return
        embed = {
            "title": title,
            "description": description,
            "color": color,
            "fields": [
                {"name": name, "value": str(value), "inline": True}
                for name, value in (fields or {}).items()
            ],
        }
        task = asyncio.create_task(self._post({"embeds": [embed]}))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _post(self, payload: dict) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Discord notification failed", error=str(exc))

    def commit_processed(self, event_name: str, repo: str, sha: str, message: str, score: int) -> None:
        self._send(
            "New commit",
            f"`{sha[:7]}` {message.splitlines()[0][:200] if message else ''}",
            COLOR_INFO,
            {"Event": event_name, "Repository": repo, "Score": score},
        )

    def event_started(self, event_name: str, participants: int, end_time) -> None:
        self._send(
            "Event started",
            f"**{event_name}** is now running.",
            COLOR_SUCCESS,
            {"Participants": participants, "Ends": end_time.isoformat() if end_time else "-"},
        )

    def event_finished(self, event_name: str, podium: list[tuple[int, str, int]]) -> None:
        lines = [f"#{rank} {name}: {total}" for rank, name, total in podium] or ["No scores"]
        self._send(
            "Event finished",
            f"**{event_name}** is over. Final standings:\n" + "\n".join(lines),
            COLOR_GOLD,
        )

    def achievement_earned(self, event_name: str, username: str, achievement: str) -> None:
        self._send(
            "Achievement unlocked",
            f"**{username}** earned `{achievement}`",
            COLOR_GOLD,
            {"Event": event_name},
        )

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
