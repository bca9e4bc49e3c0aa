"""Open-Meteo forecast client (ECMWF-based, no API key).

API docs: https://open-meteo.com/en/docs
"""

import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

import httpx

from ..schemas.weather import ForecastPoint, WeatherBundle, WeatherReading
from .wind_adjustment import RAW, WindCalibration

logger = logging.getLogger(__name__)

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
PROVIDER = "open-meteo"

FORECAST_POINTS = 8

# Open-Meteo has no visibility field
DEFAULT_VISIBILITY_KM = 10.0

# WMO weather interpretation codes
WMO_DESCRIPTIONS: dict[int, str] = {
    0: "clear sky",
    1: "mainly clear",
    2: "partly cloudy",
    3: "overcast",
    45: "fog",
    48: "depositing rime fog",
    51: "light drizzle",
    53: "moderate drizzle",
    55: "dense drizzle",
    61: "slight rain",
    63: "moderate rain",
    65: "heavy rain",
    71: "slight snow",
    73: "moderate snow",
    75: "heavy snow",
    77: "snow grains",
    80: "slight rain showers",
    81: "moderate rain showers",
    82: "violent rain showers",
    85: "slight snow showers",
    86: "heavy snow showers",
    95: "thunderstorm",
    96: "thunderstorm with slight hail",
    99: "thunderstorm with heavy hail",
}


def wmo_description(code: Optional[int]) -> str:
    return WMO_DESCRIPTIONS.get(code, "unknown") if code is not None else "unknown"


def wmo_icon(code: Optional[int], is_day: bool = True) -> str:
    """Map a WMO code to an OpenWeatherMap-style icon id."""
    suffix = "d" if is_day else "n"
    if code is None or code == 0:
        return f"01{suffix}"
    if code <= 3:
        return f"02{suffix}"
    if code <= 48:
        return f"50{suffix}"
    if code <= 67:
        return f"09{suffix}"
    if code <= 77:
        return f"13{suffix}"
    if code <= 82:
        return f"09{suffix}"
    if code <= 86:
        return f"13{suffix}"
    return f"11{suffix}"


def _is_day(t: datetime) -> bool:
    return 6 <= t.hour < 20


def _ms_to_kmh(value: Optional[float]) -> float:
    return (value or 0.0) * 3.6


def _local_time(raw: str, tz: ZoneInfo) -> datetime:
    t = datetime.fromisoformat(raw)
    return t if t.tzinfo is not None else t.replace(tzinfo=tz)


def _first_index_from(times: list[datetime], now_t: datetime) -> int:
    """Index of the first hourly slot at or after now_t.

    The hourly series starts at 00:00 local on the first requested day, not at
    the current hour.
    """
    for i, t in enumerate(times):
        if t >= now_t:
            return i
    return len(times)


def parse_open_meteo(
    data: dict,
    tz: ZoneInfo,
    calibration: WindCalibration = RAW,
) -> WeatherBundle:
    """Turn an Open-Meteo response (wind in m/s) into a WeatherBundle (km/h)."""
    cur = data["current"]
    hourly = data["hourly"]
    codes = hourly.get("weather_code") or []
    times = [_local_time(raw, tz) for raw in hourly.get("time", [])]

    now_t = _local_time(cur["time"], tz)
    start = _first_index_from(times, now_t)
    # Slot of the hour containing now_t, for the current description
    hour_idx = start if start < len(times) and times[start] == now_t else start - 1
    cur_code = codes[hour_idx] if 0 <= hour_idx < len(codes) else None
    speed = calibration.speed(_ms_to_kmh(cur.get("wind_speed_10m")))
    gust = calibration.gust(_ms_to_kmh(cur.get("wind_gusts_10m")))
    current = WeatherReading(
        timestamp=now_t,
        temperature=cur["temperature_2m"],
        humidity=cur["relative_humidity_2m"],
        pressure=cur["pressure_msl"],
        visibility=DEFAULT_VISIBILITY_KM,
        wind_speed=speed,
        wind_gust=max(gust, speed),
        wind_direction=cur.get("wind_direction_10m") or 0,
        description=wmo_description(cur_code),
        icon=wmo_icon(cur_code, _is_day(now_t)),
    )

    forecast: list[ForecastPoint] = []
    for i in range(start, min(start + FORECAST_POINTS, len(times))):
        t = times[i]
        speed = calibration.speed(_ms_to_kmh(hourly["wind_speed_10m"][i]))
        gust = calibration.gust(_ms_to_kmh(hourly["wind_gusts_10m"][i]))
        code = codes[i] if i < len(codes) else None
        forecast.append(ForecastPoint(
            time=t,
            temperature=hourly["temperature_2m"][i],
            wind_speed=speed,
            wind_gust=max(gust, speed),
            wind_direction=hourly["wind_direction_10m"][i] or 0,
            description=wmo_description(code),
            icon=wmo_icon(code, _is_day(t)),
        ))

    return WeatherBundle(current=current, forecast=forecast, provider=PROVIDER)


async def fetch_open_meteo(
    client: httpx.AsyncClient,
    lat: float,
    lon: float,
    timezone_name: str,
    calibration: WindCalibration = RAW,
) -> WeatherBundle:
    """Fetch current conditions and the next hours from Open-Meteo.

    Raises:
        httpx.HTTPError: on transport failure or non-2xx status.
    """
    params = {
        "latitude": lat,
        "longitude": lon,
        "current": ",".join([
            "temperature_2m", "relative_humidity_2m", "apparent_temperature",
            "pressure_msl", "wind_speed_10m", "wind_direction_10m", "wind_gusts_10m",
        ]),
        "hourly": ",".join([
            "temperature_2m", "wind_speed_10m", "wind_direction_10m",
            "wind_gusts_10m", "weather_code",
        ]),
        "wind_speed_unit": "ms",
        "timezone": timezone_name,
        "forecast_days": 2,
    }
    resp = await client.get(OPEN_METEO_URL, params=params)
    resp.raise_for_status()
    bundle = parse_open_meteo(resp.json(), ZoneInfo(timezone_name), calibration)
    logger.info("Open-Meteo: %d forecast points for (%s, %s)", len(bundle.forecast), lat, lon)
    return bundle
