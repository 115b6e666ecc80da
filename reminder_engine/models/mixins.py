"""Mixins for SQLAlchemy models."""

from sqlalchemy import Column, DateTime, func

from reminder_engine.timeutils import utcnow


class TimestampMixin:
    """Row creation and last-change times, always in UTC.

    Set from Python so ORM inserts and the store's bulk UPDATEs stamp the same
    clock on every backend; the server default covers raw SQL inserts.
    """

    created_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
