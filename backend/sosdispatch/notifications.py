"""
Emergency-contact alerts.

The gateway never raises: every recipient is attempted, failures are logged and counted.
The dispatch engine submits it to the background scheduler so a slow or broken SMS
provider never delays or fails a dispatch.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional

import requests

from .geo import is_e164
from .models import Citizen, DispatchRequest
from .settings import settings

logger = logging.getLogger(__name__)


@dataclass
class NotifyResult:
    sent: int = 0
    failed: int = 0


class SmsSender(ABC):
    """Delivers one SMS. Implementations raise on delivery failure."""

    @abstractmethod
    def send(self, to: str, body: str) -> None:
        raise NotImplementedError


class ConsoleSmsSender(SmsSender):
    """Development sender: logs the message instead of delivering it."""

    def send(self, to: str, body: str) -> None:
        logger.info(f"[SMS to {to}] {body!r}")


class TwilioSmsSender(SmsSender):
    BASE_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

    def __init__(self, account_sid: str, auth_token: str, messaging_service_sid: str,
                 timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.messaging_service_sid = messaging_service_sid
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, to: str, body: str) -> None:
        resp = self.session.post(
            self.BASE_URL.format(sid=self.account_sid),
            data={"To": to, "Body": body, "MessagingServiceSid": self.messaging_service_sid},
            auth=(self.account_sid, self.auth_token),
            timeout=self.timeout,
        )
        resp.raise_for_status()


def build_sms_sender() -> SmsSender:
    provider = (settings.SMS_PROVIDER or "console").lower()
    if provider == "twilio":
        if settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_MESSAGING_SERVICE_SID:
            logger.info("SMS provider initialized: twilio")
            return TwilioSmsSender(
                settings.TWILIO_ACCOUNT_SID,
                settings.TWILIO_AUTH_TOKEN,
                settings.TWILIO_MESSAGING_SERVICE_SID,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
        logger.warning("SMS_PROVIDER=twilio but Twilio credentials are missing. Falling back to console.")
    logger.info("SMS provider initialized: console")
    return ConsoleSmsSender()


def sos_message(citizen: Optional[Citizen], request: DispatchRequest) -> str:
    name = citizen.display_name if citizen else "Your contact"
    return f"SOS {request.service_type.upper()} ALERT\n{name} needs help.\nLocation: {request.maps_url}"


class NotificationGateway:
    def __init__(self, sender: SmsSender):
        self.sender = sender

    def send(self, phones: Iterable[str], message: str) -> NotifyResult:
        result = NotifyResult()
        for phone in phones:
            if not is_e164(phone):
                logger.warning(f"Skipping invalid contact phone {phone!r}")
                result.failed += 1
                continue
            try:
                self.sender.send(phone, message)
                result.sent += 1
            except Exception as e:
                logger.warning(f"SMS to {phone} failed: {e}")
                result.failed += 1
        return result

    def notify_emergency_contacts(self, citizen: Optional[Citizen], contact_phones: List[str],
                                  request: DispatchRequest) -> NotifyResult:
        if not contact_phones:
            logger.info(f"No emergency contacts to alert for request {request.id}")
            return NotifyResult()
        result = self.send(contact_phones, sos_message(citizen, request))
        logger.info(
            f"Emergency contacts alerted for request {request.id}: "
            f"{result.sent} sent, {result.failed} failed"
        )
        return result
