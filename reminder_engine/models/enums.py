"""Enums for model fields."""

from datetime import timedelta
from enum import Enum


class ReminderStatus(str, Enum):
    """Lifecycle states of a reminder."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        """Sent and canceled rows never change status again."""
        return self in (ReminderStatus.SENT, ReminderStatus.CANCELED)


class ReminderChannel(str, Enum):
    """Outbound delivery channels."""

    EMAIL = "email"
    SMS = "sms"


class RecurringInterval(str, Enum):
    """Spacing between occurrences of a recurring reminder."""

    DAILY = "daily"
    ALTERNATE_DAYS = "alternate_days"
    WEEKLY = "weekly"

    @property
    def delta(self) -> timedelta:
        """Time between two consecutive occurrences."""
        return _INTERVAL_DELTAS[self]


_INTERVAL_DELTAS = {
    RecurringInterval.DAILY: timedelta(hours=24),
    RecurringInterval.ALTERNATE_DAYS: timedelta(hours=48),
    RecurringInterval.WEEKLY: timedelta(days=7),
}


class CancelReason(str, Enum):
    """Why a reminder ended up canceled."""

    MANUAL = "manual"
    CLIENT_OPTED_OUT = "client_opted_out"
    CHAIN_CANCELED = "chain_canceled"
