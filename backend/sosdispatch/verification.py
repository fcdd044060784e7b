"""
Phone verification (OTP) collaborator.

The dispatch core never calls this; it only feeds the `verified` flags of responders
(which find_nearest_available requires) and citizens.
"""

import logging
import random
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

import requests

from .models import utcnow
from .settings import settings

logger = logging.getLogger(__name__)


class Verifier(ABC):
    @abstractmethod
    def send_code(self, phone: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def check_code(self, phone: str, code: str) -> bool:
        raise NotImplementedError


class ConsoleVerifier(Verifier):
    """
    Development verifier. Codes are kept in memory and written to the log.

    Codes expire after OTP_EXPIRY_MINUTES and are single use.
    """

    OTP_LENGTH = 6
    OTP_EXPIRY_MINUTES = 5

    def __init__(self, clock=utcnow):
        self.clock = clock
        self._codes: Dict[str, Tuple[str, datetime]] = {}
        self._lock = threading.Lock()

    def generate_code(self) -> str:
        return "".join(random.choice("0123456789") for _ in range(self.OTP_LENGTH))

    def send_code(self, phone: str) -> bool:
        code = self.generate_code()
        expires_at = self.clock() + timedelta(minutes=self.OTP_EXPIRY_MINUTES)
        with self._lock:
            self._codes[phone] = (code, expires_at)
        logger.info(f"OTP for {phone}: {code} (expires at {expires_at})")
        return True

    def check_code(self, phone: str, code: str) -> bool:
        with self._lock:
            stored = self._codes.get(phone)
            if not stored:
                return False
            expected, expires_at = stored
            if self.clock() > expires_at:
                del self._codes[phone]
                return False
            if code != expected:
                return False
            del self._codes[phone]
            return True


class TwilioVerifier(Verifier):
    BASE_URL = "https://verify.twilio.com/v2/Services/{sid}"

    def __init__(self, account_sid: str, auth_token: str, service_sid: str,
                 timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.auth = (account_sid, auth_token)
        self.base_url = self.BASE_URL.format(sid=service_sid)
        self.timeout = timeout
        self.session = session or requests.Session()

    def send_code(self, phone: str) -> bool:
        try:
            resp = self.session.post(
                f"{self.base_url}/Verifications",
                data={"To": phone, "Channel": "sms"},
                auth=self.auth,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Twilio Verify send failed for {phone}: {e}")
            return False
        if resp.status_code >= 400:
            logger.warning(f"Twilio Verify send for {phone} rejected with status {resp.status_code}")
            return False
        return True

    def check_code(self, phone: str, code: str) -> bool:
        try:
            resp = self.session.post(
                f"{self.base_url}/VerificationCheck",
                data={"To": phone, "Code": code},
                auth=self.auth,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Twilio Verify check failed for {phone}: {e}")
            return False
        if resp.status_code >= 400:
            return False
        return resp.json().get("status") == "approved"


def build_verifier() -> Verifier:
    provider = (settings.OTP_PROVIDER or "console").lower()
    if provider == "twilio":
        if settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_VERIFY_SERVICE_SID:
            logger.info("OTP provider initialized: twilio")
            return TwilioVerifier(
                settings.TWILIO_ACCOUNT_SID,
                settings.TWILIO_AUTH_TOKEN,
                settings.TWILIO_VERIFY_SERVICE_SID.strip(),
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
        logger.warning("OTP_PROVIDER=twilio but Twilio credentials are missing. Falling back to console.")
    logger.info("OTP provider initialized: console")
    return ConsoleVerifier()
