"""Wind threshold evaluator.

Classifies the strongest forecast wind inside a look-ahead window into an
ordered alert level relative to a subscriber's threshold:

    ratio = max_wind / threshold
    ratio >= 1.5   danger
    ratio >= 1.2   warning
    ratio >= 1.0   caution
    otherwise      normal

Gusts count: a point qualifies when max(wind_speed, wind_gust) exceeds the
threshold.
"""

import math
from datetime import datetime, timedelta
from typing import Optional, Sequence

from ..schemas.alerts import AlertLevel, Evaluation
from ..schemas.weather import ForecastPoint

DANGER_RATIO = 1.5
WARNING_RATIO = 1.2
CAUTION_RATIO = 1.0

DEFAULT_LOOKAHEAD_HOURS = 8


class InvalidThresholdError(ValueError):
    """Raised when a wind threshold is not a positive finite number."""


def _check_threshold(threshold: float) -> None:
    if not isinstance(threshold, (int, float)) or not math.isfinite(threshold) or threshold <= 0:
        raise InvalidThresholdError(f"wind threshold must be > 0, got {threshold!r}")


def classify(wind: float, threshold: float) -> AlertLevel:
    """Map a wind speed (km/h) to an alert level for the given threshold."""
    _check_threshold(threshold)
    ratio = wind / threshold
    if ratio >= DANGER_RATIO:
        return AlertLevel.DANGER
    if ratio >= WARNING_RATIO:
        return AlertLevel.WARNING
    if ratio >= CAUTION_RATIO:
        return AlertLevel.CAUTION
    return AlertLevel.NORMAL


def evaluate(
    forecast: Sequence[ForecastPoint],
    threshold: float,
    lookahead_hours: int = DEFAULT_LOOKAHEAD_HOURS,
    now: Optional[datetime] = None,
) -> Optional[Evaluation]:
    """Evaluate a forecast window against a wind threshold.

    Args:
        forecast: Forecast points, in any order.
        threshold: Subscriber threshold in km/h. Must be > 0.
        lookahead_hours: Width of the window.
        now: Window start. Defaults to the earliest forecast time.

    Returns:
        Evaluation with the level, the maximum qualifying wind and the time of
        the earliest qualifying point, or None when nothing exceeds the
        threshold.
    """
    _check_threshold(threshold)
    if lookahead_hours < 0:
        raise ValueError("lookahead_hours must be >= 0")
    if not forecast:
        return None

    points = sorted(forecast, key=lambda p: p.time)
    start = now if now is not None else points[0].time
    end = start + timedelta(hours=lookahead_hours)

    qualifying = [
        p for p in points
        if start <= p.time <= end and p.peak_wind > threshold
    ]
    if not qualifying:
        return None

    max_wind = max(p.peak_wind for p in qualifying)
    return Evaluation(
        level=classify(max_wind, threshold),
        max_wind=max_wind,
        trigger_time=qualifying[0].time,
    )
