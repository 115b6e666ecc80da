"""Durable reminder storage.

Every state change goes through a single conditional UPDATE so that two
workers (or a worker and a dashboard click) can never both act on the same
reminder. The UPDATE's row count is the answer to "did I win?".
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import delete, func, or_, update
from sqlalchemy.orm import Session

from reminder_engine.exceptions import ConflictError, NotFoundError, ValidationError
from reminder_engine.models import Client, Reminder, ReminderAttempt
from reminder_engine.models.enums import (
    CancelReason,
    RecurringInterval,
    ReminderChannel,
    ReminderStatus,
)
from reminder_engine.services.delivery_gateway import DeliveryOutcome
from reminder_engine.services.recurrence import build_successor
from reminder_engine.timeutils import to_utc_aware, utcnow

logger = logging.getLogger(__name__)


class ReminderStore:
    """Reminder persistence bound to one database session."""

    def __init__(self, db: Session):
        self.db = db

    # Reads

    def get(self, reminder_id: str) -> Reminder:
        reminder = (
            self.db.query(Reminder)
            .populate_existing()
            .filter(Reminder.id == reminder_id)
            .first()
        )
        if reminder is None:
            raise NotFoundError(f"Reminder {reminder_id} not found")
        return reminder

    def get_client(self, client_id: str) -> Client | None:
        return self.db.query(Client).filter(Client.id == client_id).first()

    def list_due(self, now: datetime, limit: int) -> list[Reminder]:
        """Pending, unclaimed reminders due at ``now``, oldest first, ties by id."""
        return (
            self.db.query(Reminder)
            .filter(
                Reminder.status == ReminderStatus.PENDING,
                Reminder.claim_token.is_(None),
                Reminder.scheduled_at <= to_utc_aware(now),
            )
            .order_by(Reminder.scheduled_at.asc(), Reminder.id.asc())
            .limit(limit)
            .all()
        )

    def list_by_project(
        self,
        project_id: str,
        status: ReminderStatus | None = None,
        channel: ReminderChannel | None = None,
        search: str | None = None,
    ) -> list[Reminder]:
        """Reminders of a project, optionally filtered like the dashboard does."""
        query = (
            self.db.query(Reminder)
            .outerjoin(Client, Client.id == Reminder.client_id)
            .filter(Reminder.project_id == project_id)
        )
        if status is not None:
            query = query.filter(Reminder.status == status)
        if channel is not None:
            query = query.filter(Reminder.channel == channel)
        if search and search.strip():
            term = search.strip().lower()
            query = query.filter(
                or_(
                    func.lower(Client.name).contains(term, autoescape=True),
                    func.lower(Client.email).contains(term, autoescape=True),
                )
            )
        return query.order_by(Reminder.scheduled_at.asc(), Reminder.id.asc()).all()

    def list_attempts(self, reminder_id: str) -> list[ReminderAttempt]:
        self.get(reminder_id)
        return (
            self.db.query(ReminderAttempt)
            .filter(ReminderAttempt.reminder_id == reminder_id)
            .order_by(ReminderAttempt.attempt_number.asc())
            .all()
        )

    # Writes

    def create(self, reminder: Reminder) -> str:
        """Validate and persist a new pending reminder. Returns its id."""
        self._validate(reminder)
        reminder.status = ReminderStatus.PENDING
        reminder.attempt_number = 0
        self.db.add(reminder)
        self.db.commit()
        self.db.refresh(reminder)
        logger.info(
            f"Created {reminder.channel.value} reminder {reminder.id} "
            f"for client {reminder.client_id} at {reminder.scheduled_at}"
        )
        return reminder.id

    def list_stale_claims(self, cutoff: datetime) -> list[Reminder]:
        """In-flight reminders claimed before ``cutoff`` whose worker never finished."""
        return (
            self.db.query(Reminder)
            .filter(
                Reminder.status == ReminderStatus.PENDING,
                Reminder.claim_token.is_not(None),
                Reminder.claimed_at < to_utc_aware(cutoff),
            )
            .order_by(Reminder.claimed_at.asc())
            .all()
        )

    def claim(
        self,
        reminder_id: str,
        token: str,
        now: datetime | None = None,
        expected_status: ReminderStatus = ReminderStatus.PENDING,
        due_by: datetime | None = None,
    ) -> Reminder:
        """Move a reminder into flight so exactly one caller delivers it.

        Counts the attempt up front; the row leaves ``list_due`` immediately.
        With ``due_by`` the claim also fails if the reminder was rescheduled
        past that instant after it was listed.
        """
        now = to_utc_aware(now) or utcnow()
        conditions = [
            Reminder.id == reminder_id,
            Reminder.status == expected_status,
            Reminder.claim_token.is_(None),
        ]
        if due_by is not None:
            conditions.append(Reminder.scheduled_at <= to_utc_aware(due_by))

        result = self.db.execute(
            update(Reminder)
            .where(*conditions)
            .values(
                claim_token=token,
                claimed_at=now,
                attempt_number=Reminder.attempt_number + 1,
                last_attempt_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            self._raise_missing_or_conflict(reminder_id, "claim")
        self.db.commit()
        return self.get(reminder_id)

    def record_attempt(
        self,
        reminder_id: str,
        outcome: DeliveryOutcome,
        expected_status: ReminderStatus = ReminderStatus.PENDING,
        claim_token: str | None = None,
        now: datetime | None = None,
        actor: str | None = None,
    ) -> Reminder:
        """Write the result of a delivery attempt with a compare-and-set.

        With ``claim_token`` the attempt was already counted by ``claim`` and
        only the holder of the token may finish it. Without one the update
        itself is the claim and counts the attempt.

        A recurring reminder that reaches ``sent`` gets its successor in the
        same transaction, unless its chain was halted while it was in flight.
        """
        now = to_utc_aware(now) or utcnow()
        new_status = ReminderStatus.SENT if outcome.success else ReminderStatus.FAILED

        values = {
            "status": new_status,
            "last_error": outcome.error_summary,
            "claim_token": None,
            "claimed_at": None,
        }
        conditions = [Reminder.id == reminder_id, Reminder.status == expected_status]
        if claim_token is None:
            conditions.append(Reminder.claim_token.is_(None))
            values["attempt_number"] = Reminder.attempt_number + 1
            values["last_attempt_at"] = now
        else:
            conditions.append(Reminder.claim_token == claim_token)

        result = self.db.execute(
            update(Reminder)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            self._raise_missing_or_conflict(reminder_id, "record attempt on")

        # Row is now locked by this transaction; the read below is current
        reminder = self.get(reminder_id)
        self.db.add(
            ReminderAttempt(
                reminder_id=reminder.id,
                attempt_number=reminder.attempt_number,
                attempted_at=reminder.last_attempt_at or now,
                success=outcome.success,
                error_code=outcome.provider_error_code,
                error_message=outcome.provider_message,
                provider_message_id=outcome.provider_message_id,
                actor=actor,
            )
        )

        successor = None
        if new_status == ReminderStatus.SENT and reminder.is_recurring:
            if reminder.recurrence_halted:
                logger.info(f"Recurrence halted for reminder {reminder.id}, no successor")
            else:
                successor = build_successor(reminder)
                self._validate(successor)
                self.db.add(successor)

        self.db.commit()
        if successor is not None:
            logger.info(
                f"Scheduled recurring reminder {successor.id} after {reminder_id} "
                f"at {successor.scheduled_at}"
            )
        return self.get(reminder_id)

    def update_status(
        self,
        reminder_id: str,
        new_status: ReminderStatus,
        allowed_from: Iterable[ReminderStatus],
        scheduled_at: datetime | None = None,
        cancel_reason: CancelReason | None = None,
    ) -> Reminder:
        """Conditionally change status; fails unless the current status is allowed.

        Rows that are in flight are never touched.
        """
        allowed = list(allowed_from)
        values: dict = {"status": new_status}
        if scheduled_at is not None:
            values["scheduled_at"] = to_utc_aware(scheduled_at)

        result = self.db.execute(
            update(Reminder)
            .where(
                Reminder.id == reminder_id,
                Reminder.status.in_(allowed),
                Reminder.claim_token.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            self._raise_missing_or_conflict(reminder_id, f"move to {new_status.value}")

        if cancel_reason is not None:
            reminder = self.get(reminder_id)
            reminder.meta = {**(reminder.meta or {}), "cancelReason": cancel_reason.value}
        self.db.commit()
        logger.info(f"Reminder {reminder_id} moved to {new_status.value}")
        return self.get(reminder_id)

    def delete(self, reminder_id: str) -> None:
        """Permanently remove a reminder and its attempt history."""
        self.db.execute(
            delete(ReminderAttempt)
            .where(ReminderAttempt.reminder_id == reminder_id)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(
            delete(Reminder)
            .where(Reminder.id == reminder_id, Reminder.claim_token.is_(None))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            self._raise_missing_or_conflict(reminder_id, "delete")
        self.db.commit()
        logger.info(f"Deleted reminder {reminder_id}")

    def cancel_chain(self, client_id: str, project_id: str) -> int:
        """Stop a client's recurrence chain in a project. Returns rows canceled.

        First marks every pending row of the pair as halted, in-flight ones
        included, so a delivery finishing concurrently creates no successor.
        Then cancels every pending row that is not in flight; a successor
        committed before the halt is visible to this second step.
        """
        self.db.execute(
            update(Reminder)
            .where(
                Reminder.client_id == client_id,
                Reminder.project_id == project_id,
                Reminder.status == ReminderStatus.PENDING,
            )
            .values(recurrence_halted=True)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        pending_ids = [
            reminder_id
            for (reminder_id,) in self.db.query(Reminder.id)
            .filter(
                Reminder.client_id == client_id,
                Reminder.project_id == project_id,
                Reminder.status == ReminderStatus.PENDING,
                Reminder.claim_token.is_(None),
            )
            .all()
        ]

        canceled = 0
        for reminder_id in pending_ids:
            try:
                self.update_status(
                    reminder_id,
                    ReminderStatus.CANCELED,
                    allowed_from=[ReminderStatus.PENDING],
                    cancel_reason=CancelReason.CHAIN_CANCELED,
                )
                canceled += 1
            except (ConflictError, NotFoundError):
                # Claimed or removed since the read; the halt flag covers it
                continue

        logger.info(
            f"Canceled {canceled} pending reminders for client {client_id} in project {project_id}"
        )
        return canceled

    # Helpers

    def _validate(self, reminder: Reminder) -> None:
        try:
            reminder.channel = ReminderChannel(reminder.channel)
        except ValueError as e:
            raise ValidationError(f"Unknown channel: {reminder.channel!r}") from e

        if reminder.scheduled_at is None and reminder.parent_reminder_id is None:
            raise ValidationError("scheduledAt is required")
        reminder.scheduled_at = to_utc_aware(reminder.scheduled_at)

        if not reminder.client_id or not reminder.project_id:
            raise ValidationError("clientId and projectId are required")

        meta = dict(reminder.meta or {})
        interval = meta.get("recurringInterval")
        if interval is not None:
            try:
                meta["recurringInterval"] = RecurringInterval(interval).value
            except ValueError as e:
                raise ValidationError(f"Unknown recurringInterval: {interval!r}") from e
        recurring = bool(meta.get("recurring", False))
        if recurring and interval is None:
            raise ValidationError("recurringInterval is required for recurring reminders")
        if not recurring and interval is not None:
            raise ValidationError("recurringInterval given for a non-recurring reminder")
        meta["recurring"] = recurring
        if recurring:
            meta.setdefault("recurringSequence", 0)
        reminder.meta = meta

    def _raise_missing_or_conflict(self, reminder_id: str, action: str) -> None:
        current = self.db.query(Reminder).populate_existing().filter(Reminder.id == reminder_id).first()
        if current is None:
            raise NotFoundError(f"Reminder {reminder_id} not found")
        if current.claim_token is not None:
            raise ConflictError(f"Reminder {reminder_id} is already being processed")
        raise ConflictError(
            f"Cannot {action} reminder {reminder_id} in status {current.status.value}"
        )
