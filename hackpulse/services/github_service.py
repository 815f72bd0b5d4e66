import hashlib
import hmac
import re
from datetime import datetime

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from hackpulse.core.config import Settings
from hackpulse.core.exceptions import JoinRejectedError

logger = structlog.get_logger()

GITHUB_URL_PATTERN = re.compile(r"^https://github\.com/([\w.-]+)/([\w.-]+?)(?:\.git)?/?$")

_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)


def parse_github_url(url: str) -> tuple[str, str]:
    """Split ``https://github.com/<owner>/<name>`` into (owner, name)."""
    match = GITHUB_URL_PATTERN.match((url or "").strip())
    if not match:
        raise JoinRejectedError(
            "Invalid GitHub repository URL. Format: https://github.com/owner/repo"
        )
    return match.group(1), match.group(2)


def verify_webhook_signature(
    raw_body: bytes,
    signature_header: str | None,
    secret: str | None,
) -> bool:
    """Check an ``X-Hub-Signature-256`` header against the shared secret."""
    if not secret:
        logger.warning("Webhook secret not configured, skipping signature verification")
        return True
    if not signature_header or not signature_header.startswith("sha256="):
        return False

    digest = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature_header, f"sha256={digest}")


class GitHubService:
    """Service for interacting with the GitHub API."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.base_url = settings.github_api_base_url
        self.headers = {"Accept": "application/vnd.github.v3+json"}
        if settings.github_token:
            self.headers["Authorization"] = f"token {settings.github_token}"
        else:
            logger.warning("GITHUB_TOKEN not set, GitHub API calls will be rate limited")

    @_retry
    async def get_repository(self, owner: str, name: str) -> dict | None:
        """Fetch repository details from GitHub API."""
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{self.base_url}/repos/{owner}/{name}",
                headers=self.headers,
            )
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()

    @_retry
    async def fetch_commit_details(self, owner: str, name: str, sha: str) -> dict:
        """Fetch a single commit with stats and file list."""
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{self.base_url}/repos/{owner}/{name}/commits/{sha}",
                headers=self.headers,
            )
            response.raise_for_status()
            return response.json()

    @_retry
    async def fetch_commits_since(
        self,
        owner: str,
        name: str,
        since: datetime | None = None,
        until: datetime | None = None,
        branch: str | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """List commits on a branch inside a time window."""
        params: dict = {"per_page": min(limit, 100)}
        if since:
            params["since"] = since.isoformat()
        if until:
            params["until"] = until.isoformat()
        if branch:
            params["sha"] = branch

        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{self.base_url}/repos/{owner}/{name}/commits",
                headers=self.headers,
                params=params,
            )
            response.raise_for_status()
            return response.json()[:limit]

    async def register_webhook(self, owner: str, name: str, url: str) -> dict:
        """Create a push webhook, or return the existing one for ``url``."""
        config: dict = {"url": url, "content_type": "json", "insecure_ssl": "0"}
        if self.settings.github_webhook_secret:
            config["secret"] = self.settings.github_webhook_secret

        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{self.base_url}/repos/{owner}/{name}/hooks",
                headers=self.headers,
                json={"config": config, "events": ["push"], "active": True},
            )
            if response.status_code == 422:
                existing = await self._find_webhook(client, owner, name, url)
                if existing:
                    logger.info("Webhook already exists", repo=f"{owner}/{name}", hook_id=existing["id"])
                    return existing
            response.raise_for_status()
            data = response.json()

        logger.info("Webhook created", repo=f"{owner}/{name}", hook_id=data["id"])
        return {
            "id": data["id"],
            "url": data.get("config", {}).get("url", url),
            "active": data.get("active", True),
            "events": data.get("events", ["push"]),
        }

    async def _find_webhook(
        self,
        client: httpx.AsyncClient,
        owner: str,
        name: str,
        url: str,
    ) -> dict | None:
        response = await client.get(
            f"{self.base_url}/repos/{owner}/{name}/hooks",
            headers=self.headers,
        )
        response.raise_for_status()
        for hook in response.json():
            if hook.get("config", {}).get("url") == url:
                return {
                    "id": hook["id"],
                    "url": url,
                    "active": hook.get("active", True),
                    "events": hook.get("events", []),
                }
        return None

    async def delete_webhook(self, owner: str, name: str, hook_id: str | int) -> bool:
        async with httpx.AsyncClient() as client:
            response = await client.delete(
                f"{self.base_url}/repos/{owner}/{name}/hooks/{hook_id}",
                headers=self.headers,
            )
        if response.status_code not in (204, 404):
            logger.error("Failed to delete webhook", repo=f"{owner}/{name}", status=response.status_code)
            return False
        return True
