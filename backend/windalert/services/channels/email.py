"""Email channel via the Resend REST API."""

import html
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ...config import Channel
from ...schemas.alerts import AlertEvent
from ..http_retry import UpstreamError, post_with_retry
from .base import ADVICE, LEVEL_COLORS, LEVEL_ICONS, LEVEL_LABELS, headline

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


@dataclass
class EmailContent:
    subject: str
    html: str
    text: str


class ResendEmailAdapter:
    channel = Channel.EMAIL

    def __init__(
        self,
        api_key: str,
        from_address: str,
        from_name: str = "Wind Alert",
        app_url: str = "",
        timeout: float = 10.0,
        tries: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._from = f"{from_name} <{from_address}>"
        self._app_url = app_url
        self._timeout = timeout
        self._tries = tries
        self._transport = transport

    def render(self, event: AlertEvent) -> EmailContent:
        label = LEVEL_LABELS[event.level]
        icon = LEVEL_ICONS[event.level]
        color = LEVEL_COLORS[event.level]
        advice = ADVICE.get(event.level, [])
        place = event.place or "your area"
        when = event.time.strftime("%Y-%m-%d %H:%M") if event.time else ""

        subject = f"{icon} [{label}] Wind {event.wind_speed:.0f} km/h - {place}".strip()

        rows = [f"<p><strong>Wind:</strong> {event.wind_speed:.1f} km/h</p>"]
        if event.threshold is not None:
            rows.append(f"<p><strong>Your threshold:</strong> {event.threshold:.0f} km/h</p>")
        if when:
            rows.append(f"<p><strong>Expected from:</strong> {when}</p>")
        advice_html = "".join(f"<li>{html.escape(a)}</li>" for a in advice)
        unsubscribe = (
            f'<p><a href="{html.escape(self._app_url)}/unsubscribe">Unsubscribe</a></p>'
            if self._app_url else ""
        )
        body_html = (
            '<html><body style="font-family:Arial,sans-serif;color:#333">'
            f'<div style="background:{color};color:#fff;padding:16px;border-radius:8px 8px 0 0">'
            f"<h2>{html.escape(headline(event))}</h2><p>{html.escape(place)}</p></div>"
            '<div style="background:#f9fafb;padding:16px">'
            f"<p>{html.escape(event.message)}</p>"
            + "".join(rows)
            + (f"<p><strong>Recommendations:</strong></p><ul>{advice_html}</ul>" if advice else "")
            + f'<hr/><p style="color:#666;font-size:12px">Emergencies: 112</p>{unsubscribe}'
            "</div></body></html>"
        )

        lines = [headline(event), place, "", event.message, "", f"Wind: {event.wind_speed:.1f} km/h"]
        if event.threshold is not None:
            lines.append(f"Your threshold: {event.threshold:.0f} km/h")
        if when:
            lines.append(f"Expected from: {when}")
        if advice:
            lines.append("")
            lines.extend(f"- {a}" for a in advice)
        if self._app_url:
            lines += ["", f"Unsubscribe: {self._app_url}/unsubscribe"]

        return EmailContent(subject=subject, html=body_html, text="\n".join(lines))

    async def send(self, contact: str, content: EmailContent) -> bool:
        payload = {
            "from": self._from,
            "to": [contact],
            "subject": content.subject,
            "html": content.html,
            "text": content.text,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await post_with_retry(
                    client, RESEND_URL, json=payload, headers=headers,
                    tries=self._tries, timeout=self._timeout,
                )
        except UpstreamError as exc:
            logger.error("Email to %s failed: %s", contact, exc)
            return False

        try:
            message_id = resp.json().get("id")
        except ValueError:
            message_id = None
        if not message_id:
            logger.warning("Resend accepted email to %s without an id", contact)
            return False
        logger.info("Email sent to %s (id=%s)", contact, message_id)
        return True
