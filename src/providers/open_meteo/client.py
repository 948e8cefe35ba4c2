from __future__ import annotations

from datetime import date, timedelta
from typing import Any

import httpx


OPEN_METEO_API_BASE = "https://api.open-meteo.com"
DAILY_FIELDS = ("weathercode", "temperature_2m_max", "temperature_2m_min", "precipitation_sum", "windspeed_10m_max")

WEATHER_CODE_LABELS: dict[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Freezing fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Light rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Light snow",
    73: "Moderate snow",
    75: "Heavy snow",
    80: "Light showers",
    81: "Moderate showers",
    82: "Violent showers",
    95: "Thunderstorm",
}


class OpenMeteoProviderError(Exception):
    """Provider-level exception for Open-Meteo forecast failures."""

    @property
    def category(self) -> str:
        message = str(self).lower()
        if "connectivity error" in message or "http 429" in message or "http 5" in message:
            return "transient"
        if "unexpected open-meteo" in message:
            return "terminal"
        return "unknown"

    @property
    def retryable(self) -> bool:
        return self.category == "transient"


def weather_label(code: Any) -> str:
    try:
        return WEATHER_CODE_LABELS.get(int(code), "Unknown")
    except (TypeError, ValueError):
        return "Unknown"


def _build_base_url(base_url: str | None) -> str:
    return (base_url or OPEN_METEO_API_BASE).rstrip("/")


def _request_json(*, url: str, timeout_seconds: float, params: dict[str, Any] | None = None) -> Any:
    try:
        with httpx.Client(timeout=timeout_seconds) as client:
            response = client.get(url, params=params)
    except httpx.HTTPError as exc:
        raise OpenMeteoProviderError(f"Open-Meteo connectivity error: {exc}") from exc

    if response.status_code >= 400:
        raise OpenMeteoProviderError(f"Open-Meteo API returned HTTP {response.status_code}: {response.text[:200]}")

    try:
        return response.json()
    except ValueError as exc:
        raise OpenMeteoProviderError("Unexpected Open-Meteo response payload") from exc


def _series_value(series: dict[str, Any], field: str, index: int) -> Any:
    values = series.get(field)
    if not isinstance(values, list) or index >= len(values):
        return None
    return values[index]


def daily_forecast(
    *,
    lat: float,
    lng: float,
    start_date: date,
    days: int = 7,
    timezone_name: str = "Europe/Lisbon",
    base_url: str | None = None,
    timeout_seconds: float = 7.0,
) -> dict[str, Any]:
    """Daily forecast from ``start_date`` through ``start_date + days``, one entry per day."""
    end_date = start_date + timedelta(days=days)
    payload = _request_json(
        url=f"{_build_base_url(base_url)}/v1/forecast",
        timeout_seconds=timeout_seconds,
        params={
            "latitude": lat,
            "longitude": lng,
            "daily": ",".join(DAILY_FIELDS),
            "timezone": timezone_name,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
        },
    )
    if not isinstance(payload, dict) or not isinstance(payload.get("daily"), dict):
        raise OpenMeteoProviderError("Unexpected Open-Meteo response payload")

    daily = payload["daily"]
    forecast_days = []
    for index, day in enumerate(daily.get("time") or []):
        code = _series_value(daily, "weathercode", index)
        forecast_days.append(
            {
                "date": day,
                "weather_code": code,
                "weather_label": weather_label(code),
                "temp_max": _series_value(daily, "temperature_2m_max", index),
                "temp_min": _series_value(daily, "temperature_2m_min", index),
                "precipitation_sum": _series_value(daily, "precipitation_sum", index),
                "windspeed_max": _series_value(daily, "windspeed_10m_max", index),
            }
        )
    return {
        "forecast_start": start_date.isoformat(),
        "forecast_end": end_date.isoformat(),
        "days": forecast_days,
    }
