from celery import Celery

from hackpulse.core.config import settings

EVENT_TASKS = "hackpulse.workers.tasks.event_tasks"

celery_app = Celery(
    "hackpulse",
    broker=settings.celery_broker_url or str(settings.redis_url),
    backend=settings.celery_result_backend or str(settings.redis_url),
    include=[EVENT_TASKS],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=3600,
    timezone="UTC",
    enable_utc=True,
    task_time_limit=settings.job_default_timeout,
    task_soft_time_limit=settings.job_default_timeout - 60,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Workers must consume lifecycle, analysis and sync
    task_routes={
        f"{EVENT_TASKS}.check_expired_events": {"queue": "lifecycle"},
        f"{EVENT_TASKS}.reanalyze_pending_commits": {"queue": "analysis"},
        f"{EVENT_TASKS}.sync_repository": {"queue": "sync"},
    },
    task_annotations={
        f"{EVENT_TASKS}.check_expired_events": {"time_limit": 120, "soft_time_limit": 90},
    },
)

# Periodic tasks
celery_app.conf.beat_schedule = {
    "check-expired-events": {
        "task": f"{EVENT_TASKS}.check_expired_events",
        "schedule": settings.expiry_check_interval,
        "options": {"expires": settings.expiry_check_interval},
    },
    "reanalyze-pending-commits": {
        "task": f"{EVENT_TASKS}.reanalyze_pending_commits",
        "schedule": 600.0,  # Every 10 minutes
    },
}
