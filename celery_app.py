"""Celery application factory for the inactivity notification scheduler."""
from __future__ import annotations

import os
from typing import Optional

from celery import Celery

from notifications.config import NotifierSettings, load_settings

DEFAULT_BROKER_URL = os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0"))
DEFAULT_BACKEND_URL = os.getenv("CELERY_RESULT_BACKEND", DEFAULT_BROKER_URL)


def create_celery_app(settings: Optional[NotifierSettings] = None) -> Celery:
    """Create and configure the Celery app; raises ConfigError on bad settings."""
    settings = settings or load_settings()
    celery_app = Celery(
        "skillup_notifications",
        broker=DEFAULT_BROKER_URL,
        backend=DEFAULT_BACKEND_URL,
        include=["notifications.tasks"],
    )

    celery_app.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone=settings.timezone,
        enable_utc=True,
        # One cycle at a time, run in the main worker process so the
        # shutdown signal can reach the scheduler that owns it.
        worker_pool="solo",
        worker_concurrency=1,
        beat_schedule={
            "check-student-inactivity": {
                "task": "notifications.tasks.run_inactivity_cycle",
                "schedule": settings.schedule(),
                # A tick nobody picked up in time is dropped, not replayed late.
                "options": {"expires": settings.tick_expires},
            },
        },
    )

    return celery_app


celery_app = create_celery_app()
