"""Reminder attempt model for delivery history."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from reminder_engine.database import Base


class ReminderAttempt(Base):
    """One delivery attempt of a reminder and what the provider said about it."""

    __tablename__ = "reminder_attempts"

    id = Column(Integer, primary_key=True, index=True)
    reminder_id = Column(
        String(36), ForeignKey("reminders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    attempt_number = Column(Integer, nullable=False)
    attempted_at = Column(DateTime(timezone=True), nullable=False)
    success = Column(Boolean, nullable=False)
    error_code = Column(String(100), nullable=True)
    error_message = Column(Text, nullable=True)
    provider_message_id = Column(String(255), nullable=True)
    actor = Column(String(255), nullable=True)  # None for scheduler ticks

    # Relationships
    reminder = relationship("Reminder", back_populates="attempts")
