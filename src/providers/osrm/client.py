from __future__ import annotations

from typing import Any

import httpx


OSRM_API_BASE = "https://router.project-osrm.org"


class OsrmProviderError(Exception):
    """Provider-level exception for OSRM routing failures."""

    @property
    def category(self) -> str:
        message = str(self).lower()
        if "connectivity error" in message or "http 429" in message or "http 5" in message:
            return "transient"
        if "no routes" in message or "unexpected osrm" in message:
            return "terminal"
        return "unknown"

    @property
    def retryable(self) -> bool:
        return self.category == "transient"


def _build_base_url(base_url: str | None) -> str:
    return (base_url or OSRM_API_BASE).rstrip("/")


def _request_json(*, url: str, timeout_seconds: float, params: dict[str, Any] | None = None) -> Any:
    try:
        with httpx.Client(timeout=timeout_seconds) as client:
            response = client.get(url, params=params)
    except httpx.HTTPError as exc:
        raise OsrmProviderError(f"OSRM connectivity error: {exc}") from exc

    if response.status_code >= 400:
        raise OsrmProviderError(f"OSRM API returned HTTP {response.status_code}: {response.text[:200]}")

    try:
        return response.json()
    except ValueError as exc:
        raise OsrmProviderError("Unexpected OSRM response payload") from exc


def driving_route(
    *,
    from_lat: float,
    from_lng: float,
    to_lat: float,
    to_lng: float,
    base_url: str | None = None,
    timeout_seconds: float = 7.0,
) -> dict[str, Any]:
    """Fastest driving route. Returns ``travel_km``, ``travel_minutes`` and the raw payload."""
    url = f"{_build_base_url(base_url)}/route/v1/driving/{from_lng},{from_lat};{to_lng},{to_lat}"
    payload = _request_json(url=url, timeout_seconds=timeout_seconds, params={"overview": "false"})
    if not isinstance(payload, dict):
        raise OsrmProviderError("Unexpected OSRM response payload")
    routes = payload.get("routes") or []
    if not routes:
        raise OsrmProviderError("OSRM returned no routes")
    route = routes[0]
    try:
        distance_m = float(route["distance"])
        duration_s = float(route["duration"])
    except (KeyError, TypeError, ValueError) as exc:
        raise OsrmProviderError("Unexpected OSRM route shape") from exc
    return {
        "travel_km": round(distance_m / 1000, 1),
        "travel_minutes": round(duration_s / 60),
        "raw": payload,
    }
