from fastapi import APIRouter

from hackpulse.api.routes.ai import router as ai_router
from hackpulse.api.routes.events import router as events_router
from hackpulse.api.routes.github import router as github_router
from hackpulse.api.routes.repositories import router as repositories_router

router = APIRouter()

router.include_router(events_router, prefix="/events", tags=["events"])
router.include_router(repositories_router, prefix="/repositories", tags=["repositories"])
router.include_router(github_router, prefix="/github", tags=["github"])
router.include_router(ai_router, prefix="/ai", tags=["ai"])
