"""RateLimit ORM model: fixed-window counters shared between instances."""

from sqlalchemy import Float, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class RateLimitModel(Base):
    __tablename__ = "rate_limits"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reset_at: Mapped[float] = mapped_column(Float, nullable=False)  # Unix timestamp
