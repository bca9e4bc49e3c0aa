"""OpenWeatherMap client: current conditions + 5 day / 3 hour forecast.

API docs: https://openweathermap.org/api
"""

import logging
from datetime import datetime, timezone

import httpx

from ..schemas.weather import ForecastPoint, WeatherBundle, WeatherReading
from .wind_adjustment import RAW, WindCalibration

logger = logging.getLogger(__name__)

OPENWEATHER_BASE_URL = "https://api.openweathermap.org/data/2.5"
PROVIDER = "openweather"

FORECAST_POINTS = 8  # 8 x 3h = 24h


def _wind(raw: dict, calibration: WindCalibration) -> tuple[float, float]:
    """Return (speed, gust) in km/h; a missing gust defaults to the speed."""
    speed = (raw.get("speed") or 0.0) * 3.6
    gust = raw["gust"] * 3.6 if raw.get("gust") else speed
    speed = calibration.speed(speed)
    gust = calibration.gust(gust)
    return speed, max(gust, speed)


def _weather_text(item: dict) -> tuple[str, str]:
    weather = (item.get("weather") or [{}])[0]
    return weather.get("description", ""), weather.get("icon", "")


def parse_openweather(
    current_data: dict,
    forecast_data: dict,
    calibration: WindCalibration = RAW,
) -> WeatherBundle:
    """Turn OpenWeatherMap metric responses (m/s, metres) into a WeatherBundle (km/h, km)."""
    speed, gust = _wind(current_data.get("wind", {}), calibration)
    description, icon = _weather_text(current_data)
    main = current_data["main"]
    observed = current_data.get("dt")
    current = WeatherReading(
        timestamp=(
            datetime.fromtimestamp(observed, tz=timezone.utc)
            if observed else datetime.now(timezone.utc)
        ),
        temperature=main["temp"],
        humidity=main["humidity"],
        pressure=main["pressure"],
        visibility=(current_data.get("visibility") or 0) / 1000.0,
        wind_speed=speed,
        wind_gust=gust,
        wind_direction=current_data.get("wind", {}).get("deg") or 0,
        description=description,
        icon=icon,
    )

    forecast: list[ForecastPoint] = []
    for item in forecast_data.get("list", [])[:FORECAST_POINTS]:
        speed, gust = _wind(item.get("wind", {}), calibration)
        description, icon = _weather_text(item)
        forecast.append(ForecastPoint(
            time=datetime.fromtimestamp(item["dt"], tz=timezone.utc),
            temperature=item["main"]["temp"],
            wind_speed=speed,
            wind_gust=gust,
            wind_direction=item.get("wind", {}).get("deg") or 0,
            description=description,
            icon=icon,
        ))

    return WeatherBundle(current=current, forecast=forecast, provider=PROVIDER)


async def fetch_openweather(
    client: httpx.AsyncClient,
    api_key: str,
    lat: float,
    lon: float,
    calibration: WindCalibration = RAW,
) -> WeatherBundle:
    """Fetch current weather and the 24h forecast from OpenWeatherMap.

    Raises:
        ValueError: if no API key is configured.
        httpx.HTTPError: on transport failure or non-2xx status.
    """
    if not api_key:
        raise ValueError("OpenWeatherMap API key not configured")

    params = {"lat": lat, "lon": lon, "appid": api_key, "units": "metric"}
    current_resp = await client.get(f"{OPENWEATHER_BASE_URL}/weather", params=params)
    current_resp.raise_for_status()
    forecast_resp = await client.get(f"{OPENWEATHER_BASE_URL}/forecast", params=params)
    forecast_resp.raise_for_status()

    bundle = parse_openweather(current_resp.json(), forecast_resp.json(), calibration)
    logger.info("OpenWeatherMap: %d forecast points for (%s, %s)", len(bundle.forecast), lat, lon)
    return bundle
