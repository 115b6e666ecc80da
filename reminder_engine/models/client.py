"""Client model.

Clients are owned by the project-management side of the product. The reminder
engine only reads them: for the recipient address, the opt-out flag, and the
dashboard search.
"""

import uuid

from sqlalchemy import Boolean, Column, String, UniqueConstraint

from reminder_engine.database import Base
from reminder_engine.models.mixins import TimestampMixin


class Client(Base, TimestampMixin):
    """A person who is asked for a testimonial."""

    __tablename__ = "clients"
    __table_args__ = (
        UniqueConstraint("project_id", "email", name="uq_clients_project_email"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)
    company = Column(String(255), nullable=True)
    reminder_opt_out = Column(Boolean, nullable=False, default=False)
