"""Pydantic schemas for weather readings and forecasts."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for wire models: camelCase JSON, snake_case attributes."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _WindFields(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    temperature: float
    wind_speed: float = Field(ge=0)  # km/h
    wind_gust: float = Field(ge=0)  # km/h, never below wind_speed
    wind_direction: float = Field(ge=0, le=360)
    description: str = ""
    icon: str = ""

    @model_validator(mode="after")
    def _gust_not_below_speed(self):
        if self.wind_gust < self.wind_speed:
            raise ValueError(
                f"wind_gust ({self.wind_gust}) must be >= wind_speed ({self.wind_speed})"
            )
        return self

    @property
    def peak_wind(self) -> float:
        return max(self.wind_speed, self.wind_gust)


class WeatherReading(_WindFields):
    timestamp: datetime
    humidity: float = Field(ge=0, le=100)
    pressure: float = Field(gt=0)  # hPa
    visibility: float = Field(ge=0)  # km


class ForecastPoint(_WindFields):
    time: datetime


class WeatherBundle(CamelModel):
    current: WeatherReading
    forecast: list[ForecastPoint]
    provider: str
