"""Push channel: OneSignal REST API or VAPID web push.

Expired subscriptions (HTTP 404/410 from the push service, or OneSignal
reporting the player id as invalid) are not removed here. They are collected
and handed back through drain_expired() so the caller can flag them for
pruning.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from pywebpush import WebPushException, webpush

from ...config import Channel
from ...schemas.alerts import AlertEvent
from ..http_retry import UpstreamError, post_with_retry
from .base import LEVEL_ICONS, headline

logger = logging.getLogger(__name__)

ONESIGNAL_URL = "https://onesignal.com/api/v1/notifications"

# Push services answer these when the subscription is gone for good
EXPIRED_STATUS_CODES = (404, 410)


@dataclass
class PushContent:
    title: str
    body: str
    url: str = ""
    data: dict[str, Any] = field(default_factory=dict)


def render_push(event: AlertEvent, app_url: str = "") -> PushContent:
    title = f"{LEVEL_ICONS[event.level]} {headline(event)}".strip()
    body = f"{event.wind_speed:.0f} km/h"
    if event.place:
        body += f" in {event.place}"
    if event.message:
        body += f". {event.message}"
    data = {
        "level": event.level.value,
        "windSpeed": event.wind_speed,
        "threshold": event.threshold,
        "place": event.place,
        "time": event.time.isoformat() if event.time else None,
        "url": app_url,
    }
    return PushContent(title=title, body=body, url=app_url, data=data)


def is_valid_subscription(raw: str) -> bool:
    """Check a serialized Web Push subscription has endpoint + p256dh + auth."""
    try:
        sub = json.loads(raw)
    except (TypeError, ValueError):
        return False
    if not isinstance(sub, dict) or not isinstance(sub.get("endpoint"), str):
        return False
    keys = sub.get("keys")
    return (
        isinstance(keys, dict)
        and isinstance(keys.get("p256dh"), str)
        and isinstance(keys.get("auth"), str)
    )


class _ExpiryTracking:
    def __init__(self) -> None:
        self._expired: list[str] = []

    def _mark_expired(self, contact: str) -> None:
        logger.warning("Push subscription expired, flagging for pruning: %.40s", contact)
        self._expired.append(contact)

    def drain_expired(self) -> list[str]:
        expired, self._expired = self._expired, []
        return expired


class OneSignalPushAdapter(_ExpiryTracking):
    channel = Channel.PUSH

    def __init__(
        self,
        app_id: str,
        api_key: str,
        app_url: str = "",
        timeout: float = 10.0,
        tries: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__()
        self._app_id = app_id
        self._api_key = api_key
        self._app_url = app_url
        self._timeout = timeout
        self._tries = tries
        self._transport = transport

    def render(self, event: AlertEvent) -> PushContent:
        return render_push(event, self._app_url)

    async def send(self, contact: str, content: PushContent) -> bool:
        payload: dict[str, Any] = {
            "app_id": self._app_id,
            "include_player_ids": [contact],
            "headings": {"en": content.title},
            "contents": {"en": content.body},
            "data": content.data,
        }
        if content.url:
            payload["url"] = content.url
        headers = {"Authorization": f"Basic {self._api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await post_with_retry(
                    client, ONESIGNAL_URL, json=payload, headers=headers,
                    tries=self._tries, timeout=self._timeout,
                )
        except UpstreamError as exc:
            if exc.status_code in EXPIRED_STATUS_CODES:
                self._mark_expired(contact)
            logger.error("Push to %.40s failed: %s", contact, exc)
            return False

        try:
            result = resp.json()
        except ValueError:
            result = {}
        errors = result.get("errors")
        # OneSignal answers 200 with errors.invalid_player_ids for dead subscriptions
        if isinstance(errors, dict) and contact in (errors.get("invalid_player_ids") or []):
            self._mark_expired(contact)
            return False
        if not result.get("id"):
            logger.warning("OneSignal did not create a notification for %.40s: %s", contact, errors)
            return False
        logger.info("Push sent to %.40s (id=%s)", contact, result["id"])
        return True


class WebPushAdapter(_ExpiryTracking):
    channel = Channel.PUSH

    def __init__(
        self,
        vapid_private_key: str,
        vapid_subject: str,
        app_url: str = "",
        timeout: float = 10.0,
    ) -> None:
        super().__init__()
        self._private_key = vapid_private_key
        self._claims = {"sub": vapid_subject}
        self._app_url = app_url
        self._timeout = timeout

    def render(self, event: AlertEvent) -> PushContent:
        return render_push(event, self._app_url)

    async def send(self, contact: str, content: PushContent) -> bool:
        try:
            subscription = json.loads(contact)
        except ValueError:
            logger.error("Malformed web push subscription: %.40s", contact)
            return False

        payload = json.dumps({
            "title": content.title,
            "body": content.body,
            "icon": "/icons/wind-icon-192.png",
            "badge": "/icons/wind-icon-72.png",
            "data": {**content.data, "url": content.url},
            "actions": [
                {"action": "view", "title": "View details"},
                {"action": "dismiss", "title": "Dismiss"},
            ],
        })

        try:
            # pywebpush is blocking (requests); keep it off the event loop
            await asyncio.to_thread(
                webpush,
                subscription_info=subscription,
                data=payload,
                vapid_private_key=self._private_key,
                vapid_claims=dict(self._claims),
                timeout=self._timeout,
            )
        except WebPushException as exc:
            status = getattr(exc.response, "status_code", None)
            if status in EXPIRED_STATUS_CODES:
                self._mark_expired(contact)
            logger.error("Web push failed (status %s): %s", status, exc)
            return False
        logger.info("Web push sent to %.40s", subscription.get("endpoint", ""))
        return True
