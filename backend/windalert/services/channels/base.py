"""Channel adapter interface and shared alert wording."""

from typing import Any, Protocol

from ...config import Channel
from ...schemas.alerts import AlertEvent, AlertLevel

LEVEL_LABELS = {
    AlertLevel.NORMAL: "NORMAL",
    AlertLevel.CAUTION: "CAUTION",
    AlertLevel.WARNING: "WARNING",
    AlertLevel.DANGER: "DANGER",
}

LEVEL_ICONS = {
    AlertLevel.NORMAL: "",
    AlertLevel.CAUTION: "⚠️",
    AlertLevel.WARNING: "🌪️",
    AlertLevel.DANGER: "🚨",
}

LEVEL_COLORS = {
    AlertLevel.NORMAL: "#10b981",
    AlertLevel.CAUTION: "#f59e0b",
    AlertLevel.WARNING: "#f97316",
    AlertLevel.DANGER: "#dc2626",
}

ADVICE = {
    AlertLevel.CAUTION: ["Keep an eye on conditions", "Check the forecast before heading out"],
    AlertLevel.WARNING: ["Secure loose objects outdoors", "Avoid parking under trees"],
    AlertLevel.DANGER: [
        "Avoid travel unless necessary",
        "Secure or bring in anything that can be blown away",
        "Stay away from trees and scaffolding",
    ],
}


def headline(event: AlertEvent) -> str:
    """Short title, e.g. 'Wind alert - WARNING'."""
    return f"Wind alert - {LEVEL_LABELS[event.level]}"


class ChannelAdapter(Protocol):
    """One provider for one channel.

    send() must not raise for provider failures: it returns False instead.
    """

    channel: Channel

    def render(self, event: AlertEvent) -> Any:
        ...

    async def send(self, contact: str, content: Any) -> bool:
        ...
