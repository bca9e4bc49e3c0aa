"""Alert message text: fixed template, optionally personalised by Claude.

The template is always available. When an Anthropic API key is configured a
short personalised sentence is requested instead; any failure falls
back to the template so an alert is never held up by the text.
"""

import logging
from datetime import datetime, tzinfo
from typing import Optional

import anthropic

from ..schemas.alerts import AlertLevel

logger = logging.getLogger(__name__)

MAX_AI_CHARS = 200

SYSTEM_PROMPT = """\
You write one or two short sentences warning a resident about strong wind.
Be concrete and calm, mention the wind speed in km/h and one practical
precaution. No emojis, no greetings, no more than 200 characters."""

_TEMPLATES = {
    AlertLevel.CAUTION: "Wind up to {wind:.0f} km/h expected{where}{when}, above your {threshold:.0f} km/h threshold. Stay alert.",
    AlertLevel.WARNING: "Strong wind up to {wind:.0f} km/h expected{where}{when}. Secure loose objects outdoors.",
    AlertLevel.DANGER: "Dangerous wind up to {wind:.0f} km/h expected{where}{when}. Avoid travel and stay indoors if you can.",
}


def template_message(
    level: AlertLevel,
    wind: float,
    threshold: Optional[float] = None,
    place: str = "",
    when: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> str:
    """Plain message for a level; 'normal' gets a conditions summary.

    when is shown as local clock time in tz (when given and when is aware).
    """
    where = f" in {place}" if place else ""
    if when is not None and tz is not None and when.tzinfo is not None:
        when = when.astimezone(tz)
    when_text = f" from {when.strftime('%H:%M')}" if when else ""
    if level == AlertLevel.NORMAL:
        return f"Wind {wind:.0f} km/h{where}. No alert."
    return _TEMPLATES[level].format(
        wind=wind, threshold=threshold or wind, where=where, when=when_text,
    )


async def compose_message(
    level: AlertLevel,
    wind: float,
    threshold: Optional[float],
    place: str,
    when: Optional[datetime],
    api_key: str = "",
    model: str = "claude-haiku-4-5-20251001",
    tz: Optional[tzinfo] = None,
) -> str:
    """Return AI-written text when possible, else the template."""
    if when is not None and tz is not None and when.tzinfo is not None:
        when = when.astimezone(tz)
    fallback = template_message(level, wind, threshold, place, when)
    if not api_key or level == AlertLevel.NORMAL:
        return fallback

    prompt = (
        f"Alert level: {level.value}. Forecast wind: {wind:.0f} km/h. "
        f"Resident threshold: {threshold or wind:.0f} km/h. Location: {place or 'unknown'}. "
        f"Expected from: {when.isoformat() if when else 'now'}."
    )
    try:
        client = anthropic.AsyncAnthropic(api_key=api_key)
        response = await client.messages.create(
            model=model,
            max_tokens=150,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
    except anthropic.AuthenticationError:
        logger.error("Alert text generation failed: invalid Anthropic API key")
        return fallback
    except Exception as exc:
        logger.warning("Alert text generation failed, using template: %s", exc)
        return fallback

    text = response.content[0].text.strip() if response.content else ""
    if not text:
        return fallback
    return text[:MAX_AI_CHARS]
