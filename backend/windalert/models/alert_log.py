"""AlertLog ORM model: one row per alert dispatched to a subscriber."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, Integer, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class AlertLogModel(Base):
    __tablename__ = "alert_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc), index=True
    )
    subscriber_id: Mapped[int] = mapped_column(Integer, nullable=False)
    level: Mapped[str] = mapped_column(Text, nullable=False)
    wind_speed: Mapped[float] = mapped_column(Float, nullable=False)
    trigger_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    message: Mapped[str] = mapped_column(Text, default="")
    source: Mapped[str] = mapped_column(Text, default="monitor")  # monitor or manual

    # Per-channel outcome
    email_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    sms_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    push_sent: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("ix_alert_logs_subscriber_created", "subscriber_id", "created_at"),
    )
