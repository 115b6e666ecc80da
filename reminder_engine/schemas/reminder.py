"""Reminder schemas.

The dashboard speaks camelCase; request models accept camelCase (or field
names), response models emit camelCase.
"""

from datetime import datetime
from typing import Any

from pydantic import (
    AliasChoices,
    AliasGenerator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from reminder_engine.models.enums import RecurringInterval, ReminderChannel, ReminderStatus
from reminder_engine.timeutils import to_utc_aware


class CamelRequest(BaseModel):
    """Base for request bodies."""

    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=to_camel),
        populate_by_name=True,
    )


class CamelResponse(BaseModel):
    """Base for responses built from ORM rows."""

    model_config = ConfigDict(
        alias_generator=AliasGenerator(serialization_alias=to_camel),
        from_attributes=True,
    )


class ReminderMetadataIn(CamelRequest):
    """Recurrence settings supplied on create."""

    recurring: bool = False
    recurring_interval: RecurringInterval | None = None

    @model_validator(mode="after")
    def check_interval(self) -> "ReminderMetadataIn":
        if self.recurring and self.recurring_interval is None:
            raise ValueError("recurringInterval is required when recurring is true")
        if not self.recurring and self.recurring_interval is not None:
            raise ValueError("recurringInterval requires recurring to be true")
        return self

    def to_meta(self) -> dict[str, Any]:
        meta: dict[str, Any] = {"recurring": self.recurring}
        if self.recurring_interval is not None:
            meta["recurringInterval"] = self.recurring_interval.value
        return meta


class ReminderCreate(CamelRequest):
    """Create a reminder."""

    project_id: str = Field(..., min_length=1, max_length=36)
    client_id: str = Field(..., min_length=1, max_length=36)
    channel: ReminderChannel
    scheduled_at: datetime
    template_key: str | None = Field(None, max_length=100)
    metadata: ReminderMetadataIn = Field(default_factory=ReminderMetadataIn)


class ReminderPatch(CamelRequest):
    """Status-only patch: cancel a pending reminder or re-arm a failed one."""

    model_config = ConfigDict(extra="forbid")

    status: ReminderStatus
    scheduled_at: datetime | None = None


class ChainCancelRequest(CamelRequest):
    """Stop a client's recurrence chain, e.g. after their testimonial arrived."""

    client_id: str = Field(..., min_length=1, max_length=36)
    project_id: str = Field(..., min_length=1, max_length=36)


class ChainCancelResponse(CamelResponse):
    canceled: int


class ClientSummary(CamelResponse):
    """Client fields embedded in reminder responses."""

    id: str
    name: str
    email: str
    phone: str | None = None


class ReminderResponse(CamelResponse):
    """Reminder response."""

    id: str
    project_id: str
    client_id: str
    channel: ReminderChannel
    status: ReminderStatus
    template_key: str | None
    scheduled_at: datetime
    attempt_number: int
    last_attempt_at: datetime | None
    last_error: str | None
    # ORM attribute is ``meta``; ``metadata`` is reserved by SQLAlchemy
    metadata: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("meta", "metadata")
    )
    parent_reminder_id: str | None
    created_at: datetime
    updated_at: datetime
    client: ClientSummary | None = None

    @field_validator("scheduled_at", "last_attempt_at", "created_at", "updated_at")
    @classmethod
    def as_utc(cls, value: datetime | None) -> datetime | None:
        return to_utc_aware(value)


class ReminderAttemptResponse(CamelResponse):
    """One delivery attempt."""

    attempt_number: int
    attempted_at: datetime
    success: bool
    error_code: str | None
    error_message: str | None
    provider_message_id: str | None
    actor: str | None

    @field_validator("attempted_at")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        return to_utc_aware(value)
