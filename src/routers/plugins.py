import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from src.auth import Allow, require_operation
from src.auth.roles import PLUGINS_READ
from src.config import settings
from src.db import supabase
from src.domain.errors import StorageError
from src.domain.normalization import normalize_country, normalize_fuel_type, parse_timestamp
from src.domain.storage import fetch_one, fetch_rows
from src.models.plugins import (
    FuelPriceResponse,
    PluginStatusResponse,
    RouteEstimateResponse,
    WeatherForecastResponse,
)
from src.observability import log_event
from src.plugins.fallbacks import estimate_route, static_fuel_price
from src.plugins.registry import PLUGIN_REGISTRY, can_serve_stale, is_expired, resolve_fallback
from src.plugins.runtime import log_plugin_run
from src.providers.nominatim.client import NominatimProviderError, geocode
from src.providers.open_meteo.client import OpenMeteoProviderError, daily_forecast
from src.providers.osrm.client import OsrmProviderError, driving_route

router = APIRouter(prefix="/api/plugins", tags=["plugins"])

# Fuel cache rows are partitioned per org; prices not tied to an org share this scope.
GLOBAL_CACHE_SCOPE = "global"
_ORG_FUEL_COLUMNS = {"diesel": "diesel_price_per_liter", "gasoline": "petrol_price_per_liter"}


def _positive(value) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _write_cache(table: str, row: dict, *, on_conflict: str) -> None:
    try:
        fetch_rows(supabase.table(table).upsert(row, on_conflict=on_conflict), f"{table}.upsert")
    except StorageError as exc:
        log_event("plugin_cache_write_failed", level=logging.WARNING, table=table, error=str(exc))


def _coord_key(lat: float, lng: float) -> str:
    return f"{lat:.4f},{lng:.4f}"


@router.get("/status", response_model=list[PluginStatusResponse])
async def list_plugin_status(actor: Allow = Depends(require_operation(PLUGINS_READ))):
    """Registry descriptors with the last recorded run state."""
    rows = fetch_rows(
        supabase.table("plugin_status").select("plugin_key, enabled, last_success_at, last_error_at, last_error"),
        "plugin_status.list",
    )
    by_key = {row.get("plugin_key"): row for row in rows}
    result = []
    for descriptor in PLUGIN_REGISTRY.values():
        row = by_key.get(descriptor.key, {})
        result.append(
            PluginStatusResponse(
                key=descriptor.key,
                label=descriptor.label,
                ttl_seconds=descriptor.ttl_seconds,
                fallback_strategy=descriptor.fallback_strategy.value,
                enabled=row.get("enabled", True),
                last_success_at=row.get("last_success_at"),
                last_error_at=row.get("last_error_at"),
                last_error=row.get("last_error"),
            )
        )
    return result


def _org_fuel_price(org_id: str | None, fuel_type: str) -> float | None:
    if not org_id:
        return None
    row = fetch_one(
        supabase.table("org_settings").select("diesel_price_per_liter, petrol_price_per_liter").eq(
            "org_id", org_id
        ).limit(1),
        "org_settings.lookup",
    )
    return _positive((row or {}).get(_ORG_FUEL_COLUMNS[fuel_type]))


@router.get("/fuel", response_model=FuelPriceResponse)
async def get_fuel_price(
    country: str | None = Query(None),
    fuel_type: str | None = Query(None, alias="type"),
    actor: Allow = Depends(require_operation(PLUGINS_READ)),
):
    """Fuel price per litre: fresh cache, else org settings, else the static table."""
    country = normalize_country(country)
    fuel = normalize_fuel_type(fuel_type)
    scope = actor.org_id or GLOBAL_CACHE_SCOPE
    meta = {"country": country, "fuel_type": fuel, "scope": scope}

    cached = fetch_one(
        supabase.table("fuel_cache").select("price_per_liter, source, fetched_at").eq("scope", scope).eq(
            "country", country
        ).eq("fuel_type", fuel).order("fetched_at", desc=True).limit(1),
        "fuel_cache.lookup",
    ) or {}
    cached_price = _positive(cached.get("price_per_liter"))
    cached_at = parse_timestamp(cached.get("fetched_at"))

    if cached_price and not is_expired(cached_at, "fuel"):
        log_plugin_run(supabase_client=supabase, plugin_key="fuel", status="ok", cache_hit=True, meta=meta)
        return FuelPriceResponse(
            country=country,
            fuel_type=fuel,
            price_per_liter=cached_price,
            source=cached.get("source") or "fuel_cache",
            cache_hit=True,
            updated_at=cached_at,
        )

    try:
        price = _org_fuel_price(actor.org_id, fuel)
    except StorageError as exc:
        if cached_price and can_serve_stale(cached_at, "fuel"):
            log_plugin_run(supabase_client=supabase, plugin_key="fuel", status="ok", cache_hit=True,
                           meta={**meta, "stale": True})
            return FuelPriceResponse(
                country=country,
                fuel_type=fuel,
                price_per_liter=cached_price,
                source="fuel_cache_stale",
                cache_hit=True,
                stale=True,
                updated_at=cached_at,
                warning="Using recent cached price.",
            )
        log_plugin_run(supabase_client=supabase, plugin_key="fuel", status="error", error=str(exc),
                       meta={**meta, "fallback": resolve_fallback("fuel").value})
        return FuelPriceResponse(
            country=country,
            fuel_type=fuel,
            price_per_liter=static_fuel_price(country, fuel),
            source="static",
            cache_hit=False,
            warning="Using static fallback price.",
        )

    source = "org_settings"
    if price is None:
        price = static_fuel_price(country, fuel)
        source = "static"
    fetched_at = datetime.now(timezone.utc)
    _write_cache(
        "fuel_cache",
        {
            "scope": scope,
            "country": country,
            "fuel_type": fuel,
            "price_per_liter": price,
            "source": source,
            "fetched_at": fetched_at.isoformat(),
        },
        on_conflict="scope,country,fuel_type",
    )

    log_plugin_run(supabase_client=supabase, plugin_key="fuel", status="ok", cache_hit=False,
                   meta={**meta, "source": source})
    return FuelPriceResponse(
        country=country,
        fuel_type=fuel,
        price_per_liter=price,
        source=source,
        cache_hit=False,
        updated_at=fetched_at,
    )


@router.get("/route", response_model=RouteEstimateResponse)
async def get_route_estimate(
    from_lat: float = Query(..., ge=-90, le=90),
    from_lng: float = Query(..., ge=-180, le=180),
    to_lat: float = Query(..., ge=-90, le=90),
    to_lng: float = Query(..., ge=-180, le=180),
    actor: Allow = Depends(require_operation(PLUGINS_READ)),
):
    """Driving distance and time: fresh cache, else OSRM, else recent cache, else haversine."""
    origin = {"lat": from_lat, "lng": from_lng}
    destination = {"lat": to_lat, "lng": to_lng}
    origin_key = _coord_key(from_lat, from_lng)
    destination_key = _coord_key(to_lat, to_lng)
    meta = {"origin_key": origin_key, "destination_key": destination_key}

    cached = fetch_one(
        supabase.table("route_cache").select("travel_km, travel_minutes, source, data, fetched_at").eq(
            "origin_key", origin_key
        ).eq("destination_key", destination_key).order("fetched_at", desc=True).limit(1),
        "route_cache.lookup",
    ) or {}
    # Zero is a valid distance when both endpoints round to the same key.
    has_cached = cached.get("travel_km") is not None and cached.get("travel_minutes") is not None
    cached_at = parse_timestamp(cached.get("fetched_at"))

    if has_cached and not is_expired(cached_at, "route"):
        log_plugin_run(supabase_client=supabase, plugin_key="route", status="ok", cache_hit=True, meta=meta)
        return RouteEstimateResponse(
            travel_km=cached["travel_km"],
            travel_minutes=cached["travel_minutes"],
            source=cached.get("source") or "route_cache",
            cache_hit=True,
            origin=origin,
            destination=destination,
            data=cached.get("data") or {},
        )

    try:
        route = driving_route(
            from_lat=from_lat,
            from_lng=from_lng,
            to_lat=to_lat,
            to_lng=to_lng,
            base_url=settings.osrm_base_url,
            timeout_seconds=settings.osrm_timeout_seconds,
        )
    except OsrmProviderError as exc:
        if has_cached and can_serve_stale(cached_at, "route"):
            log_plugin_run(supabase_client=supabase, plugin_key="route", status="ok", cache_hit=True,
                           meta={**meta, "stale": True})
            return RouteEstimateResponse(
                travel_km=cached["travel_km"],
                travel_minutes=cached["travel_minutes"],
                source="route_cache_stale",
                cache_hit=True,
                stale=True,
                warning="Routing unavailable. Using recent cache.",
                origin=origin,
                destination=destination,
            )

        travel_km, travel_minutes = estimate_route(from_lat, from_lng, to_lat, to_lng)
        log_plugin_run(supabase_client=supabase, plugin_key="route", status="error", error=str(exc), meta=meta)
        return RouteEstimateResponse(
            travel_km=travel_km,
            travel_minutes=travel_minutes,
            source=resolve_fallback("route").value,
            cache_hit=False,
            warning="Using straight-line estimate.",
            origin=origin,
            destination=destination,
        )

    _write_cache(
        "route_cache",
        {
            **meta,
            "travel_km": route["travel_km"],
            "travel_minutes": route["travel_minutes"],
            "source": "osrm",
            "data": route["raw"],
            "fetched_at": datetime.now(timezone.utc).isoformat(),
        },
        on_conflict="origin_key,destination_key",
    )

    log_plugin_run(supabase_client=supabase, plugin_key="route", status="ok", cache_hit=False, meta=meta)
    return RouteEstimateResponse(
        travel_km=route["travel_km"],
        travel_minutes=route["travel_minutes"],
        source="osrm",
        cache_hit=False,
        origin=origin,
        destination=destination,
    )


def _resolve_weather_location(location: str | None, lat: float | None, lng: float | None) -> dict:
    if lat is not None and lng is not None:
        return {"lat": lat, "lng": lng, "name": location}
    if not (location or "").strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="location or lat/lng is required")
    try:
        found = geocode(
            query=location.strip(),
            user_agent=settings.nominatim_user_agent,
            country_codes=settings.geocode_country_codes,
            base_url=settings.nominatim_base_url,
            timeout_seconds=settings.weather_timeout_seconds,
        )
    except NominatimProviderError as exc:
        log_plugin_run(supabase_client=supabase, plugin_key="weather", status="error", error=str(exc),
                       meta={"location": location})
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Geocoding unavailable")
    if found is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Could not geocode location")
    return found


@router.get("/weather", response_model=WeatherForecastResponse)
async def get_weather_forecast(
    location: str | None = Query(None),
    lat: float | None = Query(None, ge=-90, le=90),
    lng: float | None = Query(None, ge=-180, le=180),
    actor: Allow = Depends(require_operation(PLUGINS_READ)),
):
    """Daily forecast: fresh cache for today, else Open-Meteo, else last cache, else manual entry."""
    place = _resolve_weather_location(location, lat, lng)
    location_key = _coord_key(place["lat"], place["lng"])
    today = datetime.now(timezone.utc).date()
    meta = {"location": location_key}

    cached = fetch_one(
        supabase.table("weather_cache").select("data, fetched_at").eq("location", location_key).eq(
            "date", today.isoformat()
        ).order("fetched_at", desc=True).limit(1),
        "weather_cache.lookup",
    ) or {}
    cached_data = cached.get("data") or None
    cached_at = parse_timestamp(cached.get("fetched_at"))

    if cached_data and not is_expired(cached_at, "weather"):
        log_plugin_run(supabase_client=supabase, plugin_key="weather", status="ok", cache_hit=True, meta=meta)
        return WeatherForecastResponse(source="weather_cache", cache_hit=True, location=place, **cached_data)

    try:
        forecast = daily_forecast(
            lat=place["lat"],
            lng=place["lng"],
            start_date=today,
            days=settings.weather_forecast_days,
            timezone_name=settings.weather_timezone,
            base_url=settings.open_meteo_base_url,
            timeout_seconds=settings.weather_timeout_seconds,
        )
    except OpenMeteoProviderError as exc:
        if cached_data and can_serve_stale(cached_at, "weather"):
            log_plugin_run(supabase_client=supabase, plugin_key="weather", status="ok", cache_hit=True,
                           meta={**meta, "stale": True})
            return WeatherForecastResponse(
                source="weather_cache_stale",
                cache_hit=True,
                stale=True,
                warning="Weather service unavailable. Using cached forecast.",
                location=place,
                **cached_data,
            )

        log_plugin_run(supabase_client=supabase, plugin_key="weather", status="error", error=str(exc),
                       meta={**meta, "fallback": resolve_fallback("weather").value})
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "error": "Weather unavailable. Enter conditions manually for now.",
                "fallback": resolve_fallback("weather").value,
            },
        )

    fetched_at = datetime.now(timezone.utc).isoformat()
    payload = {**forecast, "fetched_at": fetched_at}
    _write_cache(
        "weather_cache",
        {
            "location": location_key,
            "lat": place["lat"],
            "lon": place["lng"],
            "date": today.isoformat(),
            "data": payload,
            "fetched_at": fetched_at,
        },
        on_conflict="location,date",
    )

    log_plugin_run(supabase_client=supabase, plugin_key="weather", status="ok", cache_hit=False, meta=meta)
    return WeatherForecastResponse(source="open-meteo", cache_hit=False, location=place, **payload)
