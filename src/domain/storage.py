from __future__ import annotations

import logging
from typing import Any

from src.domain.errors import StorageError
from src.observability import incr_metric, log_event


def fetch_rows(query: Any, operation: str) -> list[dict]:
    """Execute a store query, raising StorageError instead of leaking client errors."""
    try:
        result = query.execute()
    except Exception as exc:
        log_event("storage_error", level=logging.WARNING, operation=operation, error=str(exc))
        incr_metric("storage.errors", operation=operation)
        raise StorageError(operation, exc) from exc
    return list(result.data or [])


def fetch_one(query: Any, operation: str) -> dict | None:
    rows = fetch_rows(query, operation)
    return rows[0] if rows else None
