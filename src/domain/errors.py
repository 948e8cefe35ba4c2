from __future__ import annotations

from typing import Any


class StorageError(Exception):
    """The record store could not be reached or rejected the query.

    Raised instead of returning "no row" so callers can tell a failed check
    apart from a negative one.
    """

    code = "storage_unavailable"
    status_code = 503

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        self.message = f"Storage operation failed: {operation}"
        super().__init__(self.message if cause is None else f"{self.message} ({cause})")


class IntegrationSyncError(Exception):
    """Typed failure raised by external storage integrations (Dropbox)."""

    def __init__(self, code: str, message: str, status_code: int = 500):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


def error_http_status(exc: Exception) -> int:
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int) and 400 <= status_code < 600:
        return status_code
    return 500


def error_body(exc: Exception) -> dict[str, Any]:
    code = getattr(exc, "code", None)
    if isinstance(exc, (StorageError, IntegrationSyncError)):
        body: dict[str, Any] = {"error": getattr(exc, "message", None) or str(exc)}
        if code:
            body["code"] = code
        return body
    return {"error": str(exc) or "Internal error"}
