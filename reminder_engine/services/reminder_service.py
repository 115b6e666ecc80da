"""Reminder commands issued by the dashboard and by external collaborators."""

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from reminder_engine.config import get_settings
from reminder_engine.exceptions import (
    ConflictError,
    DeliveryFailure,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from reminder_engine.models import Reminder, ReminderAttempt
from reminder_engine.models.enums import CancelReason, ReminderChannel, ReminderStatus
from reminder_engine.schemas.reminder import ReminderCreate, ReminderPatch
from reminder_engine.services.delivery_gateway import DeliveryGateway
from reminder_engine.services.reminder_store import ReminderStore
from reminder_engine.services.scheduler import deliver_reminder
from reminder_engine.timeutils import to_utc_aware, utcnow

logger = logging.getLogger(__name__)


class ReminderService:
    """Command API for reminders.

    Every command takes the ``actor`` that the upstream gateway already
    authenticated; it is recorded, never interpreted.
    """

    def __init__(self, db: Session, gateway: DeliveryGateway):
        self.db = db
        self.store = ReminderStore(db)
        self.gateway = gateway
        self.settings = get_settings()

    def create_reminder(
        self, data: ReminderCreate, actor: str, now: datetime | None = None
    ) -> Reminder:
        """Create a pending reminder scheduled in the future."""
        now = to_utc_aware(now) or utcnow()
        scheduled_at = to_utc_aware(data.scheduled_at)
        tolerance = timedelta(seconds=self.settings.clock_skew_tolerance_seconds)
        if scheduled_at < now - tolerance:
            raise ValidationError("scheduledAt must not be in the past")

        client = self.store.get_client(data.client_id)
        if client is None or client.project_id != data.project_id:
            raise NotFoundError(f"Client {data.client_id} not found in project {data.project_id}")
        if data.channel == ReminderChannel.SMS and not client.phone:
            raise ValidationError("Client has no phone number for SMS reminders")

        reminder = Reminder(
            project_id=data.project_id,
            client_id=data.client_id,
            channel=data.channel,
            template_key=data.template_key,
            scheduled_at=scheduled_at,
            meta=data.metadata.to_meta(),
            created_by=actor,
        )
        reminder_id = self.store.create(reminder)
        logger.info(f"Reminder {reminder_id} created by {actor}")
        return self.store.get(reminder_id)

    def get_reminder(self, reminder_id: str) -> Reminder:
        return self.store.get(reminder_id)

    def list_project_reminders(
        self,
        project_id: str,
        status: ReminderStatus | None = None,
        channel: ReminderChannel | None = None,
        search: str | None = None,
    ) -> list[Reminder]:
        return self.store.list_by_project(project_id, status=status, channel=channel, search=search)

    def list_attempts(self, reminder_id: str) -> list[ReminderAttempt]:
        return self.store.list_attempts(reminder_id)

    def send_now(self, reminder_id: str, actor: str) -> Reminder:
        """Deliver a pending reminder immediately, regardless of its schedule.

        Raises ``DeliveryFailure`` (after recording it) when the provider
        rejects the message.
        """
        try:
            reminder = deliver_reminder(
                self.store, self.gateway, reminder_id, require_due=False, actor=actor
            )
        except ConflictError as e:
            raise ConflictError(
                f"Reminder {reminder_id} is already being processed or is not pending"
            ) from e

        if reminder.status == ReminderStatus.FAILED:
            raise DeliveryFailure(
                f"Failed to send reminder: {reminder.last_error}", reminder=reminder
            )
        if reminder.status == ReminderStatus.CANCELED:
            raise ConflictError("Client has opted out of reminders; the reminder was canceled")

        logger.info(f"Reminder {reminder_id} sent manually by {actor}")
        return reminder

    def patch_reminder(
        self, reminder_id: str, data: ReminderPatch, actor: str, now: datetime | None = None
    ) -> Reminder:
        """Apply a status patch: ``pending -> canceled`` or ``failed -> pending``."""
        current = self.store.get(reminder_id)

        if data.status == ReminderStatus.CANCELED and current.status == ReminderStatus.PENDING:
            if data.scheduled_at is not None:
                raise ValidationError("scheduledAt cannot be changed when canceling")
            reminder = self.store.update_status(
                reminder_id,
                ReminderStatus.CANCELED,
                allowed_from=[ReminderStatus.PENDING],
                cancel_reason=CancelReason.MANUAL,
            )
        elif data.status == ReminderStatus.PENDING and current.status == ReminderStatus.FAILED:
            now = to_utc_aware(now) or utcnow()
            if data.scheduled_at is None:
                raise ValidationError("scheduledAt is required to re-arm a failed reminder")
            scheduled_at = to_utc_aware(data.scheduled_at)
            tolerance = timedelta(seconds=self.settings.clock_skew_tolerance_seconds)
            if scheduled_at < now - tolerance:
                raise ValidationError("scheduledAt must not be in the past")
            reminder = self.store.update_status(
                reminder_id,
                ReminderStatus.PENDING,
                allowed_from=[ReminderStatus.FAILED],
                scheduled_at=scheduled_at,
            )
        else:
            raise InvalidTransitionError(
                f"Cannot move reminder from {current.status.value} to {data.status.value}"
            )

        logger.info(f"Reminder {reminder_id} patched to {data.status.value} by {actor}")
        return reminder

    def delete_reminder(self, reminder_id: str, actor: str) -> None:
        self.store.delete(reminder_id)
        logger.info(f"Reminder {reminder_id} deleted by {actor}")

    def cancel_chain(self, client_id: str, project_id: str, actor: str) -> int:
        """Cancel every pending reminder for a client in a project."""
        canceled = self.store.cancel_chain(client_id, project_id)
        logger.info(f"Chain for client {client_id} canceled by {actor} ({canceled} reminders)")
        return canceled
