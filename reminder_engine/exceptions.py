"""Reminder engine error taxonomy.

Every error the engine raises on purpose derives from ``ReminderEngineError``
and carries the HTTP status the Command API answers with.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reminder_engine.models import Reminder


class ReminderEngineError(Exception):
    """Base class for reminder engine errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ReminderEngineError):
    """Malformed input, rejected before persistence."""

    status_code = 422


class NotFoundError(ReminderEngineError):
    """Unknown reminder (or client) id."""

    status_code = 404


class ConflictError(ReminderEngineError):
    """Compare-and-set lost a race, or a status precondition was unmet."""

    status_code = 409


class InvalidTransitionError(ReminderEngineError):
    """Requested status transition is not permitted from the current state."""

    status_code = 409


class DeliveryFailure(ReminderEngineError):
    """The gateway reported a transport/provider error for a manual send.

    The failed attempt has already been recorded; ``reminder`` is the
    post-attempt row.
    """

    status_code = 502

    def __init__(self, message: str, reminder: "Reminder | None" = None) -> None:
        super().__init__(message)
        self.reminder = reminder


class UnknownChannelError(ValueError):
    """Programmer error: the gateway was asked to use a channel it does not know."""
