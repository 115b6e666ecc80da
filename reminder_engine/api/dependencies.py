"""FastAPI dependencies for caller identity, database and services."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from reminder_engine.database import get_db
from reminder_engine.services.delivery_gateway import DeliveryGateway, get_delivery_gateway
from reminder_engine.services.reminder_service import ReminderService


def get_actor(
    x_actor_id: Annotated[str | None, Header(max_length=255)] = None,
) -> str:
    """Get the caller identity set by the upstream authenticating gateway.

    The value is opaque to the engine; it is only recorded.
    """
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity",
        )
    return x_actor_id.strip()


def get_reminder_service(
    db: Annotated[Session, Depends(get_db)],
    gateway: Annotated[DeliveryGateway, Depends(get_delivery_gateway)],
) -> ReminderService:
    """Get reminder service with dependencies."""
    return ReminderService(db, gateway)
