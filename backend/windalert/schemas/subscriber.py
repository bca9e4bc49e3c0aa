"""Pydantic schemas for subscribers and their alert preferences."""

import re
from datetime import datetime, timezone

from pydantic import Field, field_validator

from ..config import Channel
from .alerts import AlertLevel
from .weather import CamelModel

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _check_hhmm(value: str | None) -> str | None:
    if value is None or value == "":
        return None
    if not _HHMM.match(value):
        raise ValueError("must be HH:MM (24h)")
    return value


class Subscriber(CamelModel):
    """Domain view of a subscriber row."""
    id: int
    email: str | None = None
    phone: str | None = None
    push_handle: str | None = None
    wind_threshold: float = Field(gt=0)
    enabled_channels: list[Channel] = Field(default_factory=list)
    last_alert_at: datetime | None = None
    last_alert_level: AlertLevel | None = None
    quiet_hours_start: str | None = None
    quiet_hours_end: str | None = None
    active: bool = True

    def contact_for(self, channel: Channel) -> str | None:
        if channel == Channel.EMAIL:
            return self.email or None
        if channel == Channel.SMS:
            return self.phone or None
        return self.push_handle or None

    @classmethod
    def from_row(cls, row) -> "Subscriber":
        last_at = row.last_alert_at
        # SQLite drops tzinfo; everything is stored as UTC
        if last_at is not None and last_at.tzinfo is None:
            last_at = last_at.replace(tzinfo=timezone.utc)
        channels = [Channel(c) for c in row.channels if c in Channel._value2member_map_]
        return cls(
            id=row.id,
            email=row.email,
            phone=row.phone,
            push_handle=None if row.push_expired else row.push_handle,
            wind_threshold=row.wind_threshold,
            enabled_channels=channels,
            last_alert_at=last_at,
            last_alert_level=AlertLevel(row.last_alert_level) if row.last_alert_level else None,
            quiet_hours_start=row.quiet_hours_start,
            quiet_hours_end=row.quiet_hours_end,
            active=row.active,
        )


class SubscriberCreate(CamelModel):
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=32)
    push_handle: str | None = Field(default=None, max_length=4096)
    wind_threshold: float = Field(default=50.0, gt=0, le=300)
    enabled_channels: list[Channel] = Field(default_factory=list)
    quiet_hours_start: str | None = None
    quiet_hours_end: str | None = None

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def _hhmm(cls, v: str | None) -> str | None:
        return _check_hhmm(v)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str | None) -> str | None:
        if v and "@" not in v:
            raise ValueError("invalid email address")
        return v or None

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str | None) -> str | None:
        if v and not re.match(r"^\+?[0-9 ()-]{6,}$", v):
            raise ValueError("invalid phone number")
        return v or None


class SubscriberUpdate(SubscriberCreate):
    """All fields optional; only the ones sent are applied."""
    wind_threshold: float | None = Field(default=None, gt=0, le=300)
    enabled_channels: list[Channel] | None = None
