"""SQLAlchemy models."""

from reminder_engine.models.client import Client
from reminder_engine.models.reminder import Reminder
from reminder_engine.models.reminder_attempt import ReminderAttempt

__all__ = [
    "Client",
    "Reminder",
    "ReminderAttempt",
]
