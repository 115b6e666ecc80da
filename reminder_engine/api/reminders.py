"""Reminder API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status

from reminder_engine.api.dependencies import get_actor, get_reminder_service
from reminder_engine.models import Reminder, ReminderAttempt
from reminder_engine.models.enums import ReminderChannel, ReminderStatus
from reminder_engine.schemas.reminder import (
    ChainCancelRequest,
    ChainCancelResponse,
    ReminderAttemptResponse,
    ReminderCreate,
    ReminderPatch,
    ReminderResponse,
)
from reminder_engine.services.reminder_service import ReminderService

router = APIRouter(prefix="/api/v1", tags=["reminders"])


@router.get("/projects/{project_id}/reminders", response_model=list[ReminderResponse])
def list_project_reminders(
    project_id: str,
    actor: Annotated[str, Depends(get_actor)],
    service: Annotated[ReminderService, Depends(get_reminder_service)],
    status_filter: Annotated[ReminderStatus | None, Query(alias="status")] = None,
    channel: ReminderChannel | None = None,
    search: Annotated[str | None, Query(max_length=255)] = None,
) -> list[Reminder]:
    """List a project's reminders, filtered by status, channel and client name/email."""
    return service.list_project_reminders(
        project_id, status=status_filter, channel=channel, search=search
    )


@router.post("/reminders", response_model=ReminderResponse, status_code=status.HTTP_201_CREATED)
def create_reminder(
    data: ReminderCreate,
    actor: Annotated[str, Depends(get_actor)],
    service: Annotated[ReminderService, Depends(get_reminder_service)],
) -> Reminder:
    """Schedule a new reminder."""
    return service.create_reminder(data, actor)


@router.post("/reminders/chains/cancel", response_model=ChainCancelResponse)
def cancel_reminder_chain(
    data: ChainCancelRequest,
    actor: Annotated[str, Depends(get_actor)],
    service: Annotated[ReminderService, Depends(get_reminder_service)],
) -> ChainCancelResponse:
    """Stop all pending reminders for a client, e.g. once their testimonial arrived."""
    canceled = service.cancel_chain(data.client_id, data.project_id, actor)
    return ChainCancelResponse(canceled=canceled)


@router.get("/reminders/{reminder_id}", response_model=ReminderResponse)
def get_reminder(
    reminder_id: str,
    actor: Annotated[str, Depends(get_actor)],
    service: Annotated[ReminderService, Depends(get_reminder_service)],
) -> Reminder:
    """Get a reminder."""
    return service.get_reminder(reminder_id)


@router.get("/reminders/{reminder_id}/attempts", response_model=list[ReminderAttemptResponse])
def list_reminder_attempts(
    reminder_id: str,
    actor: Annotated[str, Depends(get_actor)],
    service: Annotated[ReminderService, Depends(get_reminder_service)],
) -> list[ReminderAttempt]:
    """Delivery history of a reminder, oldest attempt first."""
    return service.list_attempts(reminder_id)


@router.post("/reminders/{reminder_id}/send", response_model=ReminderResponse)
def send_reminder(
    reminder_id: str,
    actor: Annotated[str, Depends(get_actor)],
    service: Annotated[ReminderService, Depends(get_reminder_service)],
) -> Reminder:
    """Send a pending reminder now."""
    return service.send_now(reminder_id, actor)


@router.patch("/reminders/{reminder_id}", response_model=ReminderResponse)
def patch_reminder(
    reminder_id: str,
    data: ReminderPatch,
    actor: Annotated[str, Depends(get_actor)],
    service: Annotated[ReminderService, Depends(get_reminder_service)],
) -> Reminder:
    """Cancel a pending reminder, or re-arm a failed one with a new time."""
    return service.patch_reminder(reminder_id, data, actor)


@router.delete("/reminders/{reminder_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_reminder(
    reminder_id: str,
    actor: Annotated[str, Depends(get_actor)],
    service: Annotated[ReminderService, Depends(get_reminder_service)],
) -> Response:
    """Permanently delete a reminder."""
    service.delete_reminder(reminder_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
