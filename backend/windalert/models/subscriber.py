"""Subscriber ORM model: contact info, threshold and dedup state."""

import json
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class SubscriberModel(Base):
    __tablename__ = "subscribers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Contact info per channel
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    push_handle: Mapped[str | None] = mapped_column(Text, nullable=True)
    push_expired: Mapped[bool] = mapped_column(Boolean, default=False)

    # Preferences
    wind_threshold: Mapped[float] = mapped_column(Float, nullable=False)
    enabled_channels: Mapped[str] = mapped_column(Text, default="[]")  # JSON list
    quiet_hours_start: Mapped[str | None] = mapped_column(Text, nullable=True)
    quiet_hours_end: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Dedup state, written by claim_alert_slot()
    last_alert_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_alert_level: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def channels(self) -> list[str]:
        try:
            value = json.loads(self.enabled_channels or "[]")
        except ValueError:
            return []
        return [c for c in value if isinstance(c, str)]

    @channels.setter
    def channels(self, value: list[str]) -> None:
        self.enabled_channels = json.dumps(sorted(set(value)))
