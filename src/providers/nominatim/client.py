from __future__ import annotations

from typing import Any

import httpx


NOMINATIM_API_BASE = "https://nominatim.openstreetmap.org"


class NominatimProviderError(Exception):
    """Provider-level exception for Nominatim geocoding failures."""

    @property
    def category(self) -> str:
        message = str(self).lower()
        if "connectivity error" in message or "http 429" in message or "http 5" in message:
            return "transient"
        return "unknown"

    @property
    def retryable(self) -> bool:
        return self.category == "transient"


def _build_base_url(base_url: str | None) -> str:
    return (base_url or NOMINATIM_API_BASE).rstrip("/")


def geocode(
    *,
    query: str,
    user_agent: str,
    country_codes: str | None = None,
    base_url: str | None = None,
    timeout_seconds: float = 7.0,
) -> dict[str, Any] | None:
    """First match for a free-text place as ``{lat, lng, name}``, or None when nothing matches."""
    params = {"q": query, "format": "json", "limit": 1}
    if country_codes:
        params["countrycodes"] = country_codes
    # Nominatim's usage policy rejects requests without an identifying agent.
    headers = {"User-Agent": user_agent, "Accept-Language": "pt"}
    try:
        with httpx.Client(timeout=timeout_seconds) as client:
            response = client.get(f"{_build_base_url(base_url)}/search", params=params, headers=headers)
    except httpx.HTTPError as exc:
        raise NominatimProviderError(f"Nominatim connectivity error: {exc}") from exc

    if response.status_code >= 400:
        raise NominatimProviderError(f"Nominatim API returned HTTP {response.status_code}: {response.text[:200]}")

    try:
        results = response.json()
    except ValueError as exc:
        raise NominatimProviderError("Unexpected Nominatim response payload") from exc
    if not isinstance(results, list) or not results:
        return None

    first = results[0]
    try:
        lat = float(first["lat"])
        lng = float(first["lon"])
    except (KeyError, TypeError, ValueError) as exc:
        raise NominatimProviderError("Unexpected Nominatim result shape") from exc
    return {"lat": lat, "lng": lng, "name": first.get("name") or first.get("display_name") or query}
