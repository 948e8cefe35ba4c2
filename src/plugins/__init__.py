from src.plugins.registry import (
    PLUGIN_REGISTRY,
    FallbackStrategy,
    PluginDescriptor,
    UnknownPluginError,
    can_serve_stale,
    get_plugin,
    is_expired,
    resolve_fallback,
    ttl_for,
)

__all__ = [
    "PLUGIN_REGISTRY",
    "FallbackStrategy",
    "PluginDescriptor",
    "UnknownPluginError",
    "can_serve_stale",
    "get_plugin",
    "is_expired",
    "resolve_fallback",
    "ttl_for",
]
