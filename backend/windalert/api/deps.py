"""Shared FastAPI dependencies (overridable in tests via app.dependency_overrides)."""

from typing import Optional, Union

from fastapi import Depends

from ..config import Channel, RateLimitBackend, Settings, settings
from ..models.database import SessionLocal
from ..services.channels.base import ChannelAdapter
from ..services.dispatcher import build_adapters
from ..services.ratelimit import DatabaseRateLimiter, MemoryRateLimiter
from ..services.weather import WeatherCache, weather_cache

RateLimiter = Union[MemoryRateLimiter, DatabaseRateLimiter]

_send_alerts_limiter: Optional[RateLimiter] = None


def get_settings() -> Settings:
    return settings


def get_adapters(cfg: Settings = Depends(get_settings)) -> dict[Channel, ChannelAdapter]:
    return build_adapters(cfg)


def get_weather_cache() -> WeatherCache:
    return weather_cache


def get_rate_limiter() -> RateLimiter:
    """Limiter for POST /api/send-alerts, created on first use."""
    global _send_alerts_limiter
    if _send_alerts_limiter is None:
        if settings.rate_limit_backend == RateLimitBackend.DATABASE:
            _send_alerts_limiter = DatabaseRateLimiter(
                SessionLocal, settings.rate_limit_requests, settings.rate_limit_window_sec,
            )
        else:
            _send_alerts_limiter = MemoryRateLimiter(
                settings.rate_limit_requests, settings.rate_limit_window_sec,
            )
    return _send_alerts_limiter
