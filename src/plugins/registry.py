"""TTL and fallback policy for auxiliary plugin data.

The registry is built once at import and exposed read-only. The policy only
classifies freshness and names the fallback contract; fetching is up to the
plugin routes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from types import MappingProxyType
from typing import Final, Mapping

from src.config import settings


class FallbackStrategy(str, Enum):
    LAST_CACHE_OR_MANUAL = "last_cache_or_manual"
    ORG_SETTINGS_OR_STATIC = "org_settings_or_static"
    HAVERSINE = "haversine"
    NONE = "none"


@dataclass(frozen=True)
class PluginDescriptor:
    key: str
    label: str
    ttl_seconds: int
    fallback_strategy: FallbackStrategy

    @property
    def cacheable(self) -> bool:
        return self.ttl_seconds > 0


class UnknownPluginError(LookupError):
    """A plugin key with no registry entry. Configuration error."""


_HOUR = 60 * 60

PLUGIN_REGISTRY: Final[Mapping[str, PluginDescriptor]] = MappingProxyType(
    {
        descriptor.key: descriptor
        for descriptor in (
            PluginDescriptor("weather", "Weather", 8 * _HOUR, FallbackStrategy.LAST_CACHE_OR_MANUAL),
            PluginDescriptor("fuel", "Fuel", 24 * _HOUR, FallbackStrategy.ORG_SETTINGS_OR_STATIC),
            PluginDescriptor("route", "Routing", 7 * 24 * _HOUR, FallbackStrategy.HAVERSINE),
            PluginDescriptor("calendar_ics", "Calendar ICS", 0, FallbackStrategy.NONE),
        )
    }
)


def get_plugin(key: str) -> PluginDescriptor:
    try:
        return PLUGIN_REGISTRY[key]
    except KeyError:
        raise UnknownPluginError(f"Unregistered plugin key: {key}") from None


def ttl_for(key: str) -> int:
    return get_plugin(key).ttl_seconds


def resolve_fallback(key: str) -> FallbackStrategy:
    return get_plugin(key).fallback_strategy


def _age(last_fetched_at: datetime, now: datetime | None) -> timedelta:
    now = now or datetime.now(timezone.utc)
    if last_fetched_at.tzinfo is None:
        last_fetched_at = last_fetched_at.replace(tzinfo=timezone.utc)
    return now - last_fetched_at


def is_expired(last_fetched_at: datetime | None, key: str, now: datetime | None = None) -> bool:
    """True when cached data for ``key`` must be refetched. TTL 0 never caches."""
    descriptor = get_plugin(key)
    if not descriptor.cacheable or last_fetched_at is None:
        return True
    return _age(last_fetched_at, now) > timedelta(seconds=descriptor.ttl_seconds)


def can_serve_stale(last_fetched_at: datetime | None, key: str, now: datetime | None = None) -> bool:
    """Whether expired data is still recent enough to serve when a live fetch fails."""
    descriptor = get_plugin(key)
    if not descriptor.cacheable or last_fetched_at is None:
        return False
    grace = descriptor.ttl_seconds * settings.plugin_stale_grace_multiplier
    return _age(last_fetched_at, now) < timedelta(seconds=grace)

