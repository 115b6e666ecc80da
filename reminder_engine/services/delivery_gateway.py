"""Delivery gateway for email and SMS reminders.

The gateway hides provider details from the scheduler. ``send`` always returns
a ``DeliveryOutcome``; the only thing it raises is ``UnknownChannelError``,
which means the caller passed a channel that does not exist.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol

import httpx
from twilio.base.exceptions import TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client as TwilioClient

from reminder_engine.config import Settings, get_settings
from reminder_engine.exceptions import UnknownChannelError
from reminder_engine.models.enums import ReminderChannel
from reminder_engine.services.templates import RenderedMessage, render_message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one send attempt."""

    success: bool
    provider_error_code: str | None = None
    provider_message: str | None = None
    provider_message_id: str | None = None

    @classmethod
    def ok(cls, provider_message_id: str | None = None) -> "DeliveryOutcome":
        return cls(success=True, provider_message_id=provider_message_id)

    @classmethod
    def failure(cls, code: str, message: str | None = None) -> "DeliveryOutcome":
        return cls(success=False, provider_error_code=code, provider_message=message)

    @property
    def error_summary(self) -> str | None:
        """Human-readable error stored as the reminder's ``last_error``."""
        if self.success:
            return None
        parts = [p for p in (self.provider_error_code, self.provider_message) if p]
        return ": ".join(parts) or "unknown_error"


class ChannelSender(Protocol):
    """A provider backend for one channel."""

    def send(self, address: str, message: RenderedMessage) -> DeliveryOutcome: ...


class ConsoleSender:
    """Logs messages instead of sending them. Used for local development."""

    def __init__(self, channel: ReminderChannel) -> None:
        self.channel = channel

    def send(self, address: str, message: RenderedMessage) -> DeliveryOutcome:
        logger.info(f"[console {self.channel.value}] to={address} subject={message.subject!r}")
        logger.debug(message.body)
        return DeliveryOutcome.ok(provider_message_id=f"console-{uuid.uuid4()}")


class MailerSendEmailSender:
    """Sends email through the MailerSend HTTP API."""

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None) -> None:
        self.settings = settings
        self._client = http_client or httpx.Client(timeout=settings.delivery_timeout_seconds)

    def send(self, address: str, message: RenderedMessage) -> DeliveryOutcome:
        if not self.settings.mailersend_api_key:
            logger.warning("MailerSend API key not configured, cannot send email")
            return DeliveryOutcome.failure("channel_unavailable", "Email provider not configured")

        body = {
            "from": {
                "email": self.settings.email_from_address,
                "name": self.settings.email_from_name,
            },
            "to": [{"email": address}],
            "subject": message.subject,
            "text": message.body,
        }
        try:
            response = self._client.post(
                self.settings.mailersend_api_url,
                json=body,
                headers={"Authorization": f"Bearer {self.settings.mailersend_api_key}"},
            )
        except httpx.TimeoutException as e:
            logger.warning(f"MailerSend request to {address} timed out: {e}")
            return DeliveryOutcome.failure("timeout", str(e) or "Request timed out")
        except httpx.HTTPError as e:
            logger.error(f"MailerSend transport error for {address}: {e}")
            return DeliveryOutcome.failure("transport_error", str(e))

        if response.status_code >= 400:
            logger.error(f"MailerSend rejected email to {address}: {response.status_code}")
            return DeliveryOutcome.failure(f"http_{response.status_code}", response.text[:500])

        message_id = response.headers.get("X-Message-Id")
        logger.info(f"Email sent to {address}, id: {message_id}")
        return DeliveryOutcome.ok(provider_message_id=message_id)


class TwilioSmsSender:
    """Sends SMS through Twilio."""

    def __init__(self, settings: Settings, client: TwilioClient | None = None) -> None:
        self.settings = settings
        self._client = client

    def _use_client(self) -> TwilioClient | None:
        if self._client is None and self.settings.twilio_account_sid and self.settings.twilio_auth_token:
            self._client = TwilioClient(
                self.settings.twilio_account_sid,
                self.settings.twilio_auth_token,
                http_client=TwilioHttpClient(timeout=self.settings.delivery_timeout_seconds),
            )
            logger.info("Twilio client initialized")
        return self._client

    def send(self, address: str, message: RenderedMessage) -> DeliveryOutcome:
        client = self._use_client()
        if client is None or not self.settings.twilio_phone_number:
            logger.warning("Twilio not configured, cannot send SMS")
            return DeliveryOutcome.failure("channel_unavailable", "SMS provider not configured")

        try:
            sms = client.messages.create(
                body=message.body,
                from_=self.settings.twilio_phone_number,
                to=address,
            )
        except TwilioRestException as e:
            logger.error(f"Twilio rejected SMS to {address}: {e.code} {e.msg}")
            return DeliveryOutcome.failure(str(e.code or e.status), e.msg)
        except Exception as e:
            logger.error(f"Failed to send SMS to {address}: {e}")
            return DeliveryOutcome.failure("transport_error", str(e))

        if sms.error_code:
            logger.warning(f"Failed SMS to {address}, error {sms.error_code} {sms.error_message}")
            return DeliveryOutcome.failure(str(sms.error_code), sms.error_message)

        logger.info(f"SMS sent to {address}, SID: {sms.sid}")
        return DeliveryOutcome.ok(provider_message_id=sms.sid)


class DeliveryGateway:
    """Routes a reminder to its channel sender under a bounded timeout."""

    def __init__(
        self,
        senders: dict[ReminderChannel, ChannelSender],
        timeout_seconds: float,
        max_workers: int = 8,
    ) -> None:
        self._senders = senders
        self._timeout = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="delivery")

    def send(
        self,
        channel: ReminderChannel | str,
        recipient_address: str | None,
        template_key: str | None,
        payload: dict,
    ) -> DeliveryOutcome:
        """Send one message. Transport problems come back as a failure outcome."""
        try:
            channel = ReminderChannel(channel)
        except ValueError as e:
            raise UnknownChannelError(f"Unknown delivery channel: {channel!r}") from e

        sender = self._senders.get(channel)
        if sender is None:
            return DeliveryOutcome.failure("channel_unavailable", f"No {channel.value} sender")
        if not recipient_address:
            return DeliveryOutcome.failure(
                "missing_recipient", f"Client has no {channel.value} address"
            )

        message = render_message(channel, template_key, payload)
        future = self._executor.submit(sender.send, recipient_address, message)
        try:
            return future.result(timeout=self._timeout)
        except FuturesTimeoutError:
            # A send still queued behind busy workers must never start once reported failed
            if future.cancel():
                logger.warning(f"{channel.value} delivery to {recipient_address} timed out in queue")
            else:
                logger.warning(
                    f"{channel.value} delivery to {recipient_address} exceeded {self._timeout}s"
                )
            return DeliveryOutcome.failure("timeout", f"No provider response within {self._timeout}s")
        except Exception as e:
            logger.error(f"Unexpected {channel.value} sender error: {e}", exc_info=True)
            return DeliveryOutcome.failure("transport_error", str(e))

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)


def build_delivery_gateway(settings: Settings) -> DeliveryGateway:
    """Build a gateway with the senders selected in settings."""
    senders: dict[ReminderChannel, ChannelSender] = {}

    if settings.email_provider == "mailersend":
        senders[ReminderChannel.EMAIL] = MailerSendEmailSender(settings)
    else:
        senders[ReminderChannel.EMAIL] = ConsoleSender(ReminderChannel.EMAIL)

    if settings.sms_provider == "twilio":
        senders[ReminderChannel.SMS] = TwilioSmsSender(settings)
    else:
        senders[ReminderChannel.SMS] = ConsoleSender(ReminderChannel.SMS)

    return DeliveryGateway(
        senders,
        timeout_seconds=settings.delivery_timeout_seconds,
        max_workers=settings.scheduler_max_workers,
    )


@lru_cache
def get_delivery_gateway() -> DeliveryGateway:
    """Get the process-wide delivery gateway."""
    return build_delivery_gateway(get_settings())
