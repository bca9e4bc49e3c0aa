"""GET /api/weather - current conditions and forecast, cached for a short TTL."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..config import Settings
from ..services.weather import WeatherCache, WeatherUnavailableError
from .deps import get_settings, get_weather_cache

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/weather")
async def get_weather(
    cfg: Settings = Depends(get_settings),
    cache: WeatherCache = Depends(get_weather_cache),
):
    """Return the current reading plus the next hours of forecast."""
    try:
        bundle, hit = await cache.fetch(cfg)
    except WeatherUnavailableError as exc:
        logger.error("Weather fetch failed: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to fetch weather data", "details": str(exc)},
        )

    ttl = int(cache.ttl_seconds)
    return JSONResponse(
        content=bundle.model_dump(mode="json", by_alias=True),
        headers={
            "X-Cache": "HIT" if hit else "MISS",
            "X-Weather-Provider": bundle.provider,
            "Cache-Control": f"public, max-age={ttl}",
        },
    )
