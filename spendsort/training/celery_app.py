"""Celery beat configuration for scheduled tasks.

This configures periodic tasks like:
- Learning from user corrections (nightly)
- Re-embedding the knowledge base into the shared training-set cache

Usage:
  # Start worker
  celery -A spendsort.training.celery_app worker --loglevel=info

  # Start beat scheduler
  celery -A spendsort.training.celery_app beat --loglevel=info
"""
from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from spendsort.config import get_settings

settings = get_settings()

# Broker falls back to a local Redis when REDIS_URL is unset
REDIS_URL = settings.redis_url or "redis://localhost:6379/0"

app = Celery(
    "spendsort",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=["spendsort.training.tasks"],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes max
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

app.conf.beat_schedule = {
    "train-from-corrections": {
        "task": "spendsort.training.tasks.train_from_corrections_task",
        "schedule": crontab(hour=settings.training_schedule_hour, minute=0),
        "options": {"queue": "training"},
    },
    # Re-embed once the nightly training run has invalidated the cache
    "refresh-training-set": {
        "task": "spendsort.training.tasks.refresh_training_set_task",
        "schedule": crontab(hour=settings.training_schedule_hour, minute=30),
        "options": {"queue": "training"},
    },
}

app.conf.task_routes = {
    "spendsort.training.tasks.*": {"queue": "training"},
}

if settings.disable_beat:
    app.conf.beat_schedule = {}


__all__ = ["app"]
