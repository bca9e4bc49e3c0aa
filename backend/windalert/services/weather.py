"""Weather fetcher: primary provider with fallback, plus a short TTL cache.

The primary provider is WEATHER_PRIMARY_PROVIDER; if it fails the other one is
tried. OpenWeatherMap is skipped when no API key is configured. When both
fail, WeatherUnavailableError carries both error messages.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from ..config import Settings, WeatherProvider
from ..schemas.weather import WeatherBundle
from .weather_mock import mock_weather
from .weather_openmeteo import fetch_open_meteo
from .weather_openweather import fetch_openweather
from .wind_adjustment import WindCalibration

logger = logging.getLogger(__name__)


class WeatherUnavailableError(Exception):
    """No weather provider could deliver data."""


async def _fetch_from(
    provider: WeatherProvider,
    client: httpx.AsyncClient,
    settings: Settings,
    calibration: WindCalibration,
) -> WeatherBundle:
    if provider == WeatherProvider.OPENWEATHER:
        return await fetch_openweather(
            client, settings.openweather_api_key,
            settings.latitude, settings.longitude, calibration,
        )
    return await fetch_open_meteo(
        client, settings.latitude, settings.longitude, settings.timezone, calibration,
    )


async def fetch_weather(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> WeatherBundle:
    """Fetch current conditions and forecast, falling back between providers."""
    if settings.use_mock_weather:
        return mock_weather()

    calibration = WindCalibration(settings.urban_density, settings.urban_factors)
    primary = settings.weather_primary_provider
    secondary = (
        WeatherProvider.OPEN_METEO
        if primary == WeatherProvider.OPENWEATHER
        else WeatherProvider.OPENWEATHER
    )

    order = [primary, secondary]
    if not settings.openweather_api_key:
        order = [WeatherProvider.OPEN_METEO]

    errors: list[str] = []
    async with httpx.AsyncClient(
        timeout=settings.weather_timeout_sec,
        headers={"Accept": "application/json"},
        transport=transport,
    ) as client:
        for provider in order:
            try:
                bundle = await _fetch_from(provider, client, settings, calibration)
            except (httpx.HTTPError, ValueError, KeyError, TypeError, IndexError) as exc:
                errors.append(f"{provider.value}: {exc}")
                logger.warning("Weather provider %s failed: %s", provider.value, exc)
                continue
            if provider != primary:
                logger.info("Weather served by fallback provider %s", provider.value)
            return bundle

    raise WeatherUnavailableError("All weather providers failed. " + "; ".join(errors))


@dataclass
class _CacheEntry:
    bundle: WeatherBundle
    expires_at: float


class WeatherCache:
    """Single-entry TTL cache in front of fetch_weather()."""

    def __init__(self, ttl_seconds: float = 120.0) -> None:
        self.ttl_seconds = ttl_seconds
        self._entry: Optional[_CacheEntry] = None

    def get(self) -> Optional[WeatherBundle]:
        entry = self._entry
        if entry is not None and time.monotonic() < entry.expires_at:
            return entry.bundle
        return None

    def set(self, bundle: WeatherBundle) -> None:
        self._entry = _CacheEntry(bundle=bundle, expires_at=time.monotonic() + self.ttl_seconds)

    def clear(self) -> None:
        self._entry = None

    async def fetch(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> tuple[WeatherBundle, bool]:
        """Return (bundle, cache_hit)."""
        cached = self.get()
        if cached is not None:
            logger.debug("Weather cache hit (%s)", cached.provider)
            return cached, True
        bundle = await fetch_weather(settings, transport=transport)
        self.set(bundle)
        return bundle, False


# Module-level cache shared by the API and the monitor
weather_cache = WeatherCache()
