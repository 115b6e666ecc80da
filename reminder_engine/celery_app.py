"""Celery application configuration."""

from celery import Celery
from celery.signals import setup_logging

from reminder_engine.config import get_settings
from reminder_engine.log_config import configure_logging

settings = get_settings()

app = Celery(
    "reminder_engine",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["reminder_engine.tasks.reminders"],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes max per task
    task_soft_time_limit=240,  # 4 minutes soft limit
    worker_prefetch_multiplier=1,
)

if settings.scheduler_enabled:
    app.conf.beat_schedule = {
        "process-due-reminders": {
            "task": "reminders.process_due_reminders",
            "schedule": float(settings.scheduler_tick_seconds),
            # A tick that could not start before the next one is due is dropped
            "options": {"expires": float(settings.scheduler_tick_seconds)},
        },
    }


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    configure_logging()
