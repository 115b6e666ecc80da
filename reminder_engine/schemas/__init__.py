"""Pydantic schemas for API requests and responses."""

from reminder_engine.schemas.reminder import (
    ChainCancelRequest,
    ChainCancelResponse,
    ClientSummary,
    ReminderAttemptResponse,
    ReminderCreate,
    ReminderPatch,
    ReminderResponse,
)

__all__ = [
    "ReminderCreate",
    "ReminderPatch",
    "ReminderResponse",
    "ReminderAttemptResponse",
    "ClientSummary",
    "ChainCancelRequest",
    "ChainCancelResponse",
]
