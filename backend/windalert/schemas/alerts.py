"""Pydantic schemas and enums for alert evaluation and dispatch."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .weather import CamelModel


class AlertLevel(str, Enum):
    NORMAL = "normal"
    CAUTION = "caution"
    WARNING = "warning"
    DANGER = "danger"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    # Plain str comparison would order the values alphabetically
    def __lt__(self, other):
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank < other.rank

    def __gt__(self, other):
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank > other.rank

    def __le__(self, other):
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __ge__(self, other):
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank >= other.rank


_LEVEL_RANK = {
    AlertLevel.NORMAL: 0,
    AlertLevel.CAUTION: 1,
    AlertLevel.WARNING: 2,
    AlertLevel.DANGER: 3,
}


class Evaluation(BaseModel):
    """Outcome of evaluating a forecast window against a threshold."""
    level: AlertLevel
    max_wind: float
    trigger_time: datetime


class AlertEvent(BaseModel):
    level: AlertLevel
    wind_speed: float
    time: datetime | None = None
    message: str
    subscriber_id: int
    place: str = ""
    threshold: float | None = None


class DispatchResult(BaseModel):
    email: bool = False
    sms: bool = False
    push: bool = False

    @property
    def any_sent(self) -> bool:
        return self.email or self.sms or self.push


class BulkResult(BaseModel):
    success: int = 0
    failed: int = 0
    results: dict[int, DispatchResult] = Field(default_factory=dict)


class SendAlertRequest(CamelModel):
    """Body of POST /api/send-alerts."""
    level: AlertLevel | None = None
    wind_speed: float = Field(ge=0, le=300)
    time: str = Field(min_length=1)
    message: str | None = Field(default=None, max_length=1000)
    place: str | None = Field(default=None, max_length=200)


class CycleSummary(BaseModel):
    """Result of one fetch/evaluate/dispatch cycle."""
    provider: str | None = None
    subscribers: int = 0
    evaluated: int = 0
    alerts_sent: int = 0
    alerts_skipped: int = 0
    alerts_failed: int = 0
    levels: dict[int, AlertLevel] = Field(default_factory=dict)
