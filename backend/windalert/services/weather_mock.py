"""Synthetic weather for demos and local development (USE_MOCK_WEATHER)."""

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..schemas.weather import ForecastPoint, WeatherBundle, WeatherReading

PROVIDER = "mock"


def mock_weather(now: Optional[datetime] = None, base_wind: float = 25.0) -> WeatherBundle:
    """Deterministic for a given hour: a daily wind cycle peaking mid-afternoon."""
    now = (now or datetime.now(timezone.utc)).replace(minute=0, second=0, microsecond=0)

    def wind_at(t: datetime) -> tuple[float, float]:
        phase = (t.hour - 9) / 24 * 2 * math.pi
        speed = max(base_wind + 15 * math.sin(phase), 0.0)
        return round(speed, 1), round(speed * 1.4, 1)

    speed, gust = wind_at(now)
    current = WeatherReading(
        timestamp=now,
        temperature=12.0,
        humidity=65,
        pressure=1013.0,
        visibility=10.0,
        wind_speed=speed,
        wind_gust=gust,
        wind_direction=(now.hour * 15) % 360,
        description="mock data",
        icon="02d",
    )
    forecast = []
    for i in range(1, 9):
        t = now + timedelta(hours=i)
        speed, gust = wind_at(t)
        forecast.append(ForecastPoint(
            time=t,
            temperature=12.0,
            wind_speed=speed,
            wind_gust=gust,
            wind_direction=(t.hour * 15) % 360,
            description="mock data",
            icon="02d",
        ))
    return WeatherBundle(current=current, forecast=forecast, provider=PROVIDER)
