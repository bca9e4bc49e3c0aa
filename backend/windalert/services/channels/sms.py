"""SMS channel via the Twilio Messages REST API."""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ...config import Channel
from ...schemas.alerts import AlertEvent
from ..http_retry import UpstreamError, post_with_retry
from .base import LEVEL_LABELS

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"

# Single-segment GSM limit
SMS_MAX_CHARS = 160
SMS_SUFFIX = " Reply STOP to unsubscribe."

STOP_KEYWORDS = ("stop", "unsubscribe", "opreste", "oprește", "dezabonare", "dezaboneaza")


@dataclass
class SmsContent:
    body: str


def is_stop_message(text: str) -> bool:
    """True when an inbound SMS asks to unsubscribe.

    Only the first word counts, so "STOP" or "Stop please" opt out but
    "I'll stop by later" does not.
    """
    words = text.strip().lower().split()
    if not words:
        return False
    return words[0].strip(".,!?;:\"'") in STOP_KEYWORDS


def fit_sms(prefix: str, message: str, suffix: str = SMS_SUFFIX, limit: int = SMS_MAX_CHARS) -> str:
    """Join prefix + message + suffix, shortening only the message to fit the limit."""
    budget = limit - len(prefix) - len(suffix)
    if budget <= 0:
        return (prefix + suffix)[:limit]
    if len(message) > budget:
        # ASCII dots; a unicode ellipsis would force UCS-2 (70 chars per segment)
        message = message[: budget - 3].rstrip() + "..." if budget > 3 else message[:budget]
    return f"{prefix}{message}{suffix}"


class TwilioSmsAdapter:
    channel = Channel.SMS

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = 10.0,
        tries: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._account_sid = account_sid
        self._auth = (account_sid, auth_token)
        self._from = from_number
        self._timeout = timeout
        self._tries = tries
        self._transport = transport

    def render(self, event: AlertEvent) -> SmsContent:
        prefix = f"WIND {LEVEL_LABELS[event.level]} {event.wind_speed:.0f} km/h"
        if event.place:
            prefix += f" {event.place}"
        prefix += ": "
        return SmsContent(body=fit_sms(prefix, event.message))

    async def send(self, contact: str, content: SmsContent) -> bool:
        url = f"{TWILIO_API_BASE}/Accounts/{self._account_sid}/Messages.json"
        data = {"To": contact, "From": self._from, "Body": content.body}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await post_with_retry(
                    client, url, data=data, auth=self._auth,
                    tries=self._tries, timeout=self._timeout,
                )
        except UpstreamError as exc:
            logger.error("SMS to %s failed: %s", contact, exc)
            return False

        try:
            sid = resp.json().get("sid")
        except ValueError:
            sid = None
        if not sid:
            logger.warning("Twilio accepted SMS to %s without a sid", contact)
            return False
        logger.info("SMS sent to %s (sid=%s)", contact, sid)
        return True
