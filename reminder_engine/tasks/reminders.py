"""Celery tasks for reminder delivery."""

import logging

from reminder_engine.celery_app import app as celery_app
from reminder_engine.services.scheduler import ReminderScheduler

logger = logging.getLogger(__name__)

_scheduler: ReminderScheduler | None = None


def get_scheduler() -> ReminderScheduler:
    """Get the worker-wide scheduler, so overlapping ticks are detected."""
    global _scheduler
    if _scheduler is None:
        _scheduler = ReminderScheduler()
    return _scheduler


@celery_app.task(name="reminders.process_due_reminders")
def process_due_reminders() -> dict:
    """Deliver every due reminder in one batch.

    This task runs every ``scheduler_tick_seconds`` via celery-beat. Failures
    of individual reminders are recorded on the reminder and never fail the
    task.

    Returns:
        dict with processing statistics
    """
    try:
        result = get_scheduler().tick()
    except Exception as e:
        logger.error(f"Error processing due reminders: {e}", exc_info=True)
        return {"error": str(e)}
    return result.as_dict()
