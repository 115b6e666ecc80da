"""Recurrence chain arithmetic."""

from datetime import datetime

from reminder_engine.models.enums import RecurringInterval, ReminderStatus
from reminder_engine.models.reminder import Reminder
from reminder_engine.timeutils import to_utc_aware


def next_occurrence(scheduled_at: datetime, interval: RecurringInterval | str) -> datetime:
    """Return the scheduled time of the next occurrence.

    Always computed from the previous occurrence's scheduled time, never from
    the time it was actually delivered, so a chain does not drift.
    """
    return to_utc_aware(scheduled_at) + RecurringInterval(interval).delta


def build_successor(reminder: Reminder) -> Reminder:
    """Create the pending successor of a recurring reminder that was just sent."""
    meta = dict(reminder.meta or {})
    meta.pop("cancelReason", None)
    meta["recurringSequence"] = int(meta.get("recurringSequence") or 0) + 1

    return Reminder(
        project_id=reminder.project_id,
        client_id=reminder.client_id,
        channel=reminder.channel,
        template_key=reminder.template_key,
        scheduled_at=next_occurrence(reminder.scheduled_at, reminder.recurring_interval),
        status=ReminderStatus.PENDING,
        attempt_number=0,
        meta=meta,
        parent_reminder_id=reminder.id,
        created_by=reminder.created_by,
    )
