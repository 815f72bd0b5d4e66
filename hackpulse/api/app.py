from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hackpulse.api.routes import router as api_router
from hackpulse.core.config import Settings, get_settings
from hackpulse.core.context import AppContext
from hackpulse.core.exceptions import (
    HackPulseError,
    NotFoundError,
    ScoreLockedError,
    StateTransitionError,
)

ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    StateTransitionError: status.HTTP_409_CONFLICT,
    ScoreLockedError: status.HTTP_409_CONFLICT,
}


async def service_error_handler(request: Request, exc: HackPulseError) -> JSONResponse:
    """Turn rejected service operations into HTTP errors carrying the reason."""
    code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
        status.HTTP_400_BAD_REQUEST,
    )
    return JSONResponse(status_code=code, content={"detail": exc.reason})


def create_app(
    settings: Settings | None = None,
    context: AppContext | None = None,
    start_background: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan context manager."""
        app.state.context = context or AppContext.create(settings)
        await app.state.context.startup(start_background=start_background)
        try:
            yield
        finally:
            await app.state.context.shutdown()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Hackathon commit monitoring and leaderboard API",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(HackPulseError, service_error_handler)

    # Include API routes
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health_check(request: Request) -> dict:
        context: AppContext = request.app.state.context
        return {
            "status": "healthy",
            "version": settings.app_version,
            "expiry_watcher": context.watcher.status(),
            "analysis_queue": {
                "running": context.queue.running,
                "pending": context.queue.pending,
            },
        }

    return app


app = create_app()
