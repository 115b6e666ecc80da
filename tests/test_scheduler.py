"""Tests for the scheduler core."""

import threading
from datetime import timedelta
from unittest.mock import patch

import pytest

from reminder_engine.exceptions import ConflictError, UnknownChannelError
from reminder_engine.models import Reminder
from reminder_engine.models.enums import ReminderChannel, ReminderStatus
from reminder_engine.services.delivery_gateway import DeliveryOutcome
from reminder_engine.services.scheduler import (
    ReminderScheduler,
    TickResult,
    build_payload,
    deliver_reminder,
)
from reminder_engine.services.reminder_store import ReminderStore
from reminder_engine.tasks.reminders import process_due_reminders
from reminder_engine.timeutils import to_utc_aware
from tests.conftest import PROJECT_ID, T0, TestingSessionLocal

NOW = T0 + timedelta(minutes=1)


@pytest.fixture
def scheduler(gateway):
    return ReminderScheduler(
        gateway=gateway,
        session_factory=TestingSessionLocal,
        batch_size=10,
        max_workers=1,
        claim_stale_after=timedelta(minutes=5),
    )


class TestDeliverReminder:
    """Tests for delivering a single reminder."""

    def test_email_sent_to_client_address(self, store, gateway, email_sender, make_reminder):
        reminder = make_reminder()

        result = deliver_reminder(store, gateway, reminder.id, now=NOW)

        assert result.status == ReminderStatus.SENT
        assert result.attempt_number == 1
        address, message = email_sender.sent[0]
        assert address == "ada@example.com"
        assert f"/submit/{PROJECT_ID}?email=ada%40example.com" in message.body

    def test_sms_uses_phone(self, store, gateway, sms_sender, make_reminder):
        reminder = make_reminder(channel=ReminderChannel.SMS)

        deliver_reminder(store, gateway, reminder.id, now=NOW)

        assert sms_sender.sent[0][0] == "+15550100"

    def test_provider_failure_recorded(self, store, gateway, email_sender, make_reminder):
        email_sender.outcomes.append(DeliveryOutcome.failure("http_503", "Unavailable"))
        reminder = make_reminder()

        result = deliver_reminder(store, gateway, reminder.id, now=NOW)

        assert result.status == ReminderStatus.FAILED
        assert result.last_error == "http_503: Unavailable"
        assert result.claim_token is None

    def test_not_due_conflicts(self, store, gateway, email_sender, make_reminder):
        reminder = make_reminder(scheduled_at=NOW + timedelta(hours=1))

        with pytest.raises(ConflictError):
            deliver_reminder(store, gateway, reminder.id, now=NOW)

        assert email_sender.sent == []
        assert store.get(reminder.id).attempt_number == 0

    def test_not_due_allowed_for_manual_send(self, store, gateway, make_reminder):
        reminder = make_reminder(scheduled_at=NOW + timedelta(hours=1))

        result = deliver_reminder(store, gateway, reminder.id, now=NOW, require_due=False)

        assert result.status == ReminderStatus.SENT

    def test_opted_out_client_canceled(self, store, gateway, email_sender, make_client, make_reminder):
        client = make_client(reminder_opt_out=True)
        reminder = make_reminder(client=client)

        result = deliver_reminder(store, gateway, reminder.id, now=NOW)

        assert result.status == ReminderStatus.CANCELED
        assert result.meta["cancelReason"] == "client_opted_out"
        assert email_sender.sent == []

    def test_missing_client_fails(self, store, gateway, db, make_client, make_reminder):
        client = make_client()
        reminder = make_reminder(client=client)
        db.delete(client)
        db.commit()

        result = deliver_reminder(store, gateway, reminder.id, now=NOW)

        assert result.status == ReminderStatus.FAILED
        assert result.last_error.startswith("client_not_found")

    def test_unknown_channel_releases_claim(self, store, gateway, make_reminder):
        reminder = make_reminder()

        with patch.object(gateway, "send", side_effect=UnknownChannelError("fax")):
            with pytest.raises(UnknownChannelError):
                deliver_reminder(store, gateway, reminder.id, now=NOW)

        result = store.get(reminder.id)
        assert result.status == ReminderStatus.FAILED
        assert result.claim_token is None

    def test_build_payload(self, make_client, make_reminder):
        client = make_client(email="a+b@example.com")
        reminder = make_reminder(client=client)

        payload = build_payload(reminder, client)

        assert payload["client_name"] == "Ada Lovelace"
        assert payload["testimonial_url"].endswith(
            f"/submit/{PROJECT_ID}?email=a%2Bb%40example.com"
        )


class TestReminderScheduler:
    """Tests for scheduler ticks."""

    def test_tick_sends_due_reminders(self, scheduler, store, email_sender, make_reminder):
        due = make_reminder(scheduled_at=T0)
        future = make_reminder(scheduled_at=NOW + timedelta(days=1))

        result = scheduler.tick(now=NOW)

        assert result.due == 1
        assert result.sent == 1
        assert len(email_sender.sent) == 1
        assert store.get(due.id).status == ReminderStatus.SENT
        assert store.get(future.id).status == ReminderStatus.PENDING

    def test_tick_counts_failures_and_cancels(
        self, scheduler, email_sender, make_client, make_reminder
    ):
        make_reminder()
        opted_out = make_client(email="gone@example.com", reminder_opt_out=True)
        make_reminder(client=opted_out)
        email_sender.outcomes.append(DeliveryOutcome.failure("timeout"))

        result = scheduler.tick(now=NOW)

        assert result.due == 2
        assert result.failed == 1
        assert result.canceled == 1

    def test_second_tick_does_not_resend(self, scheduler, email_sender, make_reminder):
        make_reminder()

        scheduler.tick(now=NOW)
        result = scheduler.tick(now=NOW)

        assert result.due == 0
        assert len(email_sender.sent) == 1

    def test_failed_not_retried_automatically(self, scheduler, email_sender, make_reminder):
        make_reminder()
        email_sender.outcomes.append(DeliveryOutcome.failure("timeout"))

        scheduler.tick(now=NOW)
        result = scheduler.tick(now=NOW + timedelta(hours=1))

        assert result.due == 0
        assert len(email_sender.sent) == 1

    def test_recurring_chain_advances(self, scheduler, store, db, email_sender, make_reminder):
        first = make_reminder(meta={"recurring": True, "recurringInterval": "daily"})

        scheduler.tick(now=NOW)
        successor = db.query(Reminder).filter(Reminder.parent_reminder_id == first.id).one()
        assert to_utc_aware(successor.scheduled_at) == T0 + timedelta(days=1)

        # Not due yet
        assert scheduler.tick(now=NOW).due == 0

        scheduler.tick(now=T0 + timedelta(days=1, minutes=1))
        assert store.get(successor.id).status == ReminderStatus.SENT
        third = db.query(Reminder).filter(Reminder.parent_reminder_id == successor.id).one()
        assert to_utc_aware(third.scheduled_at) == T0 + timedelta(days=2)
        assert third.meta["recurringSequence"] == 2
        assert len(email_sender.sent) == 2

    def test_batch_size_limits_tick(self, gateway, make_reminder):
        for _ in range(3):
            make_reminder()
        scheduler = ReminderScheduler(
            gateway=gateway, session_factory=TestingSessionLocal, batch_size=2, max_workers=1
        )

        assert scheduler.tick(now=NOW).sent == 2
        assert scheduler.tick(now=NOW).sent == 1

    def test_stale_claim_expired(self, scheduler, store, make_reminder):
        reminder = make_reminder()
        store.claim(reminder.id, "dead-worker", now=T0)

        result = scheduler.tick(now=T0 + timedelta(minutes=10))

        assert result.expired_claims == 1
        expired = store.get(reminder.id)
        assert expired.status == ReminderStatus.FAILED
        assert expired.last_error.startswith("claim_expired")
        assert expired.claim_token is None

    def test_recent_claim_left_alone(self, scheduler, store, make_reminder):
        reminder = make_reminder()
        store.claim(reminder.id, "busy-worker", now=T0)

        result = scheduler.tick(now=T0 + timedelta(minutes=1))

        assert result.expired_claims == 0
        assert result.due == 0
        assert store.get(reminder.id).claim_token == "busy-worker"

    def test_send_now_racing_tick_sends_once(
        self, scheduler, store, gateway, email_sender, make_reminder
    ):
        reminder_id = make_reminder().id
        barrier = threading.Barrier(2)
        errors = []

        def send_now():
            session = TestingSessionLocal()
            try:
                barrier.wait(5)
                deliver_reminder(
                    ReminderStore(session), gateway, reminder_id, now=NOW, require_due=False
                )
            except ConflictError:
                pass
            except Exception as e:
                errors.append(e)
            finally:
                session.close()

        def tick():
            barrier.wait(5)
            scheduler.tick(now=NOW)

        threads = [threading.Thread(target=send_now), threading.Thread(target=tick)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(10)

        assert errors == []
        assert len(email_sender.sent) == 1
        result = store.get(reminder_id)
        assert result.status == ReminderStatus.SENT
        assert result.attempt_number == 1
        assert len(store.list_attempts(reminder_id)) == 1

    def test_overlapping_tick_skipped(self, scheduler):
        scheduler._tick_lock.acquire()
        try:
            result = scheduler.tick(now=NOW)
        finally:
            scheduler._tick_lock.release()

        assert result.overlapped is True
        assert result.due == 0

    def test_unexpected_error_counted(self, scheduler, make_reminder):
        make_reminder()

        with patch(
            "reminder_engine.services.scheduler.deliver_reminder",
            side_effect=RuntimeError("boom"),
        ):
            result = scheduler.tick(now=NOW)

        assert result.errors == 1


class TestProcessDueRemindersTask:
    """Tests for the celery-beat task."""

    def test_returns_tick_counters(self):
        with patch("reminder_engine.tasks.reminders.get_scheduler") as get_scheduler:
            get_scheduler.return_value.tick.return_value = TickResult(due=2, sent=2)

            result = process_due_reminders()

        assert result["due"] == 2
        assert result["sent"] == 2
        assert result["overlapped"] is False

    def test_tick_failure_reported(self):
        with patch("reminder_engine.tasks.reminders.get_scheduler") as get_scheduler:
            get_scheduler.return_value.tick.side_effect = RuntimeError("database down")

            result = process_due_reminders()

        assert result == {"error": "database down"}
