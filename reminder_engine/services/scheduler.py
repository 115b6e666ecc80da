"""Scheduler core: due-reminder selection, claiming, delivery and outcomes."""

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from urllib.parse import quote

from sqlalchemy.orm import Session, sessionmaker

from reminder_engine.config import get_settings
from reminder_engine.database import SessionLocal, session_scope
from reminder_engine.exceptions import ConflictError, NotFoundError, UnknownChannelError
from reminder_engine.models import Client, Reminder
from reminder_engine.models.enums import CancelReason, ReminderChannel, ReminderStatus
from reminder_engine.services.delivery_gateway import (
    DeliveryGateway,
    DeliveryOutcome,
    get_delivery_gateway,
)
from reminder_engine.services.reminder_store import ReminderStore
from reminder_engine.timeutils import to_utc_aware, utcnow

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """Counters for one scheduler pass."""

    due: int = 0
    sent: int = 0
    failed: int = 0
    canceled: int = 0
    skipped: int = 0
    errors: int = 0
    expired_claims: int = 0
    overlapped: bool = False

    def count(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)

    def as_dict(self) -> dict:
        return asdict(self)


def recipient_address(reminder: Reminder, client: Client) -> str | None:
    if reminder.channel == ReminderChannel.EMAIL:
        return client.email
    return client.phone


def build_payload(reminder: Reminder, client: Client) -> dict:
    """Template variables for a testimonial request."""
    base_url = get_settings().public_base_url.rstrip("/")
    return {
        "client_name": client.name,
        "client_email": client.email,
        "project_id": reminder.project_id,
        "testimonial_url": f"{base_url}/submit/{reminder.project_id}?email={quote(client.email)}",
    }


def deliver_reminder(
    store: ReminderStore,
    gateway: DeliveryGateway,
    reminder_id: str,
    now: datetime | None = None,
    require_due: bool = True,
    actor: str | None = None,
) -> Reminder:
    """Claim, send and record one reminder.

    Shared by scheduler ticks and manual send-now; ``require_due=False``
    skips only the due-time check. Raises ``ConflictError`` when another
    caller got there first and ``NotFoundError`` when the row is gone.
    Returns the reminder after its transition.
    """
    now = to_utc_aware(now) or utcnow()
    reminder = store.get(reminder_id)
    if reminder.status != ReminderStatus.PENDING or reminder.is_claimed:
        raise ConflictError(f"Reminder {reminder_id} is not pending")

    client = store.get_client(reminder.client_id)
    if client is None:
        logger.error(f"Client {reminder.client_id} not found for reminder {reminder_id}")
        return store.record_attempt(
            reminder_id,
            DeliveryOutcome.failure("client_not_found", "Client not found"),
            now=now,
            actor=actor,
        )

    if client.reminder_opt_out:
        logger.info(f"Client {client.email} has opted out, canceling reminder {reminder_id}")
        return store.update_status(
            reminder_id,
            ReminderStatus.CANCELED,
            allowed_from=[ReminderStatus.PENDING],
            cancel_reason=CancelReason.CLIENT_OPTED_OUT,
        )

    token = str(uuid.uuid4())
    claimed = store.claim(reminder_id, token, now=now, due_by=now if require_due else None)

    try:
        outcome = gateway.send(
            claimed.channel,
            recipient_address(claimed, client),
            claimed.template_key,
            build_payload(claimed, client),
        )
    except UnknownChannelError:
        # Never leave a row in flight
        store.record_attempt(
            reminder_id,
            DeliveryOutcome.failure("unknown_channel", str(claimed.channel)),
            claim_token=token,
            now=now,
            actor=actor,
        )
        raise

    result = store.record_attempt(reminder_id, outcome, claim_token=token, now=now, actor=actor)
    if outcome.success:
        logger.info(f"Reminder {reminder_id} sent via {claimed.channel.value} to client {client.id}")
    else:
        logger.warning(f"Reminder {reminder_id} failed: {outcome.error_summary}")
    return result


class ReminderScheduler:
    """Runs ticks over due reminders.

    Several schedulers (in several processes) may tick at once; the store's
    compare-and-set decides who delivers each reminder. Within one instance,
    a tick that starts while the previous one is still running is skipped.
    """

    def __init__(
        self,
        gateway: DeliveryGateway | None = None,
        session_factory: sessionmaker[Session] | None = None,
        batch_size: int | None = None,
        max_workers: int | None = None,
        claim_stale_after: timedelta | None = None,
    ) -> None:
        settings = get_settings()
        self.gateway = gateway or get_delivery_gateway()
        self.session_factory = session_factory or SessionLocal
        self.batch_size = batch_size or settings.scheduler_batch_size
        self.max_workers = max_workers or settings.scheduler_max_workers
        self.claim_stale_after = claim_stale_after or timedelta(
            seconds=settings.claim_stale_seconds
        )
        self._tick_lock = threading.Lock()

    def tick(self, now: datetime | None = None) -> TickResult:
        """Process one batch of due reminders. Never raises for a single reminder."""
        if not self._tick_lock.acquire(blocking=False):
            logger.info("Previous tick still running, skipping")
            return TickResult(overlapped=True)
        try:
            return self._run_tick(to_utc_aware(now) or utcnow())
        finally:
            self._tick_lock.release()

    def _run_tick(self, now: datetime) -> TickResult:
        result = TickResult()

        with session_scope(self.session_factory) as db:
            store = ReminderStore(db)
            result.expired_claims = self._expire_stale_claims(store, now)
            due_ids = [reminder.id for reminder in store.list_due(now, self.batch_size)]

        result.due = len(due_ids)
        if not due_ids:
            return result

        logger.info(f"Found {len(due_ids)} due reminders to process")
        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(due_ids)), thread_name_prefix="tick"
        ) as pool:
            futures = [pool.submit(self._process_one, reminder_id, now) for reminder_id in due_ids]
            for future in as_completed(futures):
                result.count(future.result())

        logger.info(f"Tick complete: {result.as_dict()}")
        return result

    def _process_one(self, reminder_id: str, now: datetime) -> str:
        try:
            with session_scope(self.session_factory) as db:
                reminder = deliver_reminder(ReminderStore(db), self.gateway, reminder_id, now=now)
                return reminder.status.value
        except (ConflictError, NotFoundError) as e:
            logger.debug(f"Skipping reminder {reminder_id}: {e}")
            return "skipped"
        except Exception as e:
            logger.error(f"Error processing reminder {reminder_id}: {e}", exc_info=True)
            return "errors"

    def _expire_stale_claims(self, store: ReminderStore, now: datetime) -> int:
        expired = 0
        for reminder in store.list_stale_claims(now - self.claim_stale_after):
            try:
                store.record_attempt(
                    reminder.id,
                    DeliveryOutcome.failure(
                        "claim_expired", "Worker did not report a delivery outcome"
                    ),
                    claim_token=reminder.claim_token,
                    now=now,
                )
                expired += 1
                logger.warning(f"Expired stale claim on reminder {reminder.id}")
            except (ConflictError, NotFoundError):
                continue
        return expired
