from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class PluginStatusResponse(BaseModel):
    key: str
    label: str
    ttl_seconds: int
    fallback_strategy: str
    enabled: bool = True
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None


class FuelPriceResponse(BaseModel):
    country: str
    fuel_type: str
    price_per_liter: float
    source: str
    cache_hit: bool
    stale: bool = False
    updated_at: datetime | None = None
    warning: str | None = None


class RouteEndpoint(BaseModel):
    lat: float
    lng: float


class RouteEstimateResponse(BaseModel):
    travel_km: float
    travel_minutes: int
    source: str
    cache_hit: bool
    stale: bool = False
    warning: str | None = None
    origin: RouteEndpoint
    destination: RouteEndpoint
    data: dict[str, Any] = Field(default_factory=dict)


class WeatherLocation(BaseModel):
    lat: float
    lng: float
    name: str | None = None


class WeatherDay(BaseModel):
    date: str
    weather_code: int | None = None
    weather_label: str
    temp_max: float | None = None
    temp_min: float | None = None
    precipitation_sum: float | None = None
    windspeed_max: float | None = None


class WeatherForecastResponse(BaseModel):
    source: str
    cache_hit: bool
    stale: bool = False
    warning: str | None = None
    location: WeatherLocation
    forecast_start: str | None = None
    forecast_end: str | None = None
    days: list[WeatherDay] = Field(default_factory=list)
    fetched_at: datetime | None = None
