"""Reminder model."""

import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from reminder_engine.database import Base
from reminder_engine.models.enums import RecurringInterval, ReminderChannel, ReminderStatus
from reminder_engine.models.mixins import TimestampMixin


class Reminder(Base, TimestampMixin):
    """A scheduled, channel-specific testimonial request to one client."""

    __tablename__ = "reminders"
    __table_args__ = (
        Index("ix_reminders_status_scheduled_at", "status", "scheduled_at"),
        Index("ix_reminders_project_status", "project_id", "status"),
        Index("ix_reminders_client_project", "client_id", "project_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Non-owning references; clients and projects live outside the engine
    project_id = Column(String(36), nullable=False)
    client_id = Column(String(36), nullable=False)
    channel = Column(
        Enum(
            ReminderChannel,
            name="reminderchannel",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    template_key = Column(String(100), nullable=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(
        Enum(
            ReminderStatus,
            name="reminderstatus",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=ReminderStatus.PENDING,
        nullable=False,
    )
    attempt_number = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)
    # {"recurring": bool, "recurringInterval": str, "recurringSequence": int, "cancelReason": str}
    meta = Column("metadata", JSON, nullable=False, default=dict)
    # Unique: a parent has at most one successor
    parent_reminder_id = Column(String(36), nullable=True, unique=True)
    created_by = Column(String(255), nullable=True)

    # In-flight claim; set while a delivery attempt runs
    claim_token = Column(String(36), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    # Set by chain cancel on a row that was in flight at the time
    recurrence_halted = Column(Boolean, nullable=False, default=False)

    # Relationships
    client = relationship(
        "Client",
        primaryjoin="foreign(Reminder.client_id) == Client.id",
        viewonly=True,
        lazy="joined",
    )
    attempts = relationship(
        "ReminderAttempt",
        back_populates="reminder",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ReminderAttempt.attempt_number",
    )

    @property
    def is_recurring(self) -> bool:
        return bool((self.meta or {}).get("recurring"))

    @property
    def recurring_interval(self) -> RecurringInterval | None:
        value = (self.meta or {}).get("recurringInterval")
        return RecurringInterval(value) if value else None

    @property
    def is_claimed(self) -> bool:
        return self.claim_token is not None
