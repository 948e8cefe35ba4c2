from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Literal

from src.observability import incr_metric, log_event
from src.plugins.registry import get_plugin


def log_plugin_run(
    *,
    supabase_client: Any,
    plugin_key: str,
    status: Literal["ok", "error"],
    cache_hit: bool = False,
    error: str | None = None,
    meta: dict[str, Any] | None = None,
) -> bool:
    """Record a plugin run for diagnostics. Never raises."""
    get_plugin(plugin_key)
    incr_metric("plugins.runs", plugin_key=plugin_key, status=status, cache_hit=cache_hit)
    now = datetime.now(timezone.utc).isoformat()
    try:
        supabase_client.table("plugin_runs").insert(
            {
                "plugin_key": plugin_key,
                "status": status,
                "cache_hit": cache_hit,
                "error": error,
                "meta": meta or {},
            }
        ).execute()
        supabase_client.table("plugin_status").upsert(
            {
                "plugin_key": plugin_key,
                "enabled": True,
                "last_success_at": now if status == "ok" else None,
                "last_error_at": now if status == "error" else None,
                "last_error": (error or "Plugin error") if status == "error" else None,
                "updated_at": now,
            },
            on_conflict="plugin_key",
        ).execute()
    except Exception as exc:
        log_event(
            "plugin_run_log_failed",
            level=logging.WARNING,
            plugin_key=plugin_key,
            error=str(exc),
        )
        return False
    return True
