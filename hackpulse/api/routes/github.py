import json

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from hackpulse.api.dependencies import get_context
from hackpulse.api.schemas.commit import BatchOutcome
from hackpulse.core.context import AppContext
from hackpulse.services.github_service import verify_webhook_signature

logger = structlog.get_logger()

router = APIRouter()


@router.post(
    "/webhook",
    summary="Receive GitHub webhook deliveries",
)
async def github_webhook(
    request: Request,
    x_github_event: str | None = Header(None),
    x_hub_signature_256: str | None = Header(None),
    context: AppContext = Depends(get_context),
) -> dict:
    """Verify the delivery signature and run pushed commits through intake."""
    raw_body = await request.body()
    if not verify_webhook_signature(
        raw_body, x_hub_signature_256, context.settings.github_webhook_secret
    ):
        logger.warning("Invalid webhook signature", github_event=x_github_event)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    if x_github_event == "ping":
        return {"message": "pong"}
    if x_github_event != "push":
        return {"message": f"Event {x_github_event} acknowledged"}

    try:
        payload = json.loads(raw_body)
        full_name = payload["repository"]["full_name"]
        commits = payload.get("commits") or []
        if not isinstance(commits, list):
            raise TypeError("commits is not a list")
    except (ValueError, KeyError, TypeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed push payload",
        ) from exc

    logger.info("Push received", repo=full_name, commits=len(commits))
    batch = await context.intake.process_push(full_name, commits)

    return {
        "message": "Push processed",
        "repository": full_name,
        **BatchOutcome.model_validate(batch).model_dump(mode="json"),
    }
