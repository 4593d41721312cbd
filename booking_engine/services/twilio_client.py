# booking_engine/services/twilio_client.py
import logging
import re
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioSDKClient

from booking_engine.config import get_settings

logger = logging.getLogger(__name__)

# Twilio rejects message bodies longer than this
MAX_SMS_BODY = 1600

_E164 = re.compile(r"^\+[1-9]\d{6,14}$")


def normalize_phone(number: str) -> str:
    """Strip spaces, dashes and brackets; the result must be E.164."""
    cleaned = re.sub(r"[\s\-().]", "", number or "")
    if not _E164.match(cleaned):
        raise ValueError(f"Phone number is not in E.164 format: {number!r}")
    return cleaned


class TwilioSmsClient:
    """
    Booking confirmations over SMS.

    Tests swap this for a fake with the same `send_sms` method.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        status_callback: Optional[str] = None,
    ):
        self._client = TwilioSDKClient(account_sid, auth_token)
        self._from_number = from_number
        self._status_callback = status_callback

    def send_sms(self, to_number: str, body: str) -> str:
        """Send one message and return its Message SID."""
        params = {
            "to": normalize_phone(to_number),
            "from_": self._from_number,
            "body": body[:MAX_SMS_BODY],
        }
        if self._status_callback:
            params["status_callback"] = self._status_callback

        try:
            message = self._client.messages.create(**params)
        except TwilioRestException as exc:
            logger.warning("Twilio rejected SMS to %s: %s (code %s)", params["to"], exc.msg, exc.code)
            raise
        return message.sid


def get_twilio_client() -> TwilioSmsClient:
    """
    Build a configured SMS client.
    Raises RuntimeError if configuration is incomplete.
    """
    settings = get_settings()

    required = ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER")
    missing = [name for name in required if not getattr(settings, name)]
    if missing:
        raise RuntimeError(f"Twilio not configured, missing: {', '.join(missing)}")

    return TwilioSmsClient(
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=settings.TWILIO_AUTH_TOKEN,
        from_number=settings.TWILIO_PHONE_NUMBER,
        status_callback=settings.TWILIO_STATUS_CALLBACK_URL,
    )
