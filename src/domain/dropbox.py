from __future__ import annotations

from typing import Any

from src.config import Settings
from src.domain.errors import IntegrationSyncError
from src.domain.storage import fetch_one, fetch_rows

CONNECTION_FIELDS = "id, org_id, account_email, account_id, token_expires_at, last_synced_at, updated_at"


def config_status(config: Settings) -> dict[str, Any]:
    """Which Dropbox settings are still missing. Redirect URI is optional."""
    missing: list[str] = []
    if not config.dropbox_client_id:
        missing.append("DROPBOX_CLIENT_ID")
    if not config.dropbox_client_secret:
        missing.append("DROPBOX_CLIENT_SECRET")
    if not config.dropbox_token_secret:
        missing.append("DROPBOX_TOKEN_SECRET")
    ready = not missing
    if not config.dropbox_redirect_uri:
        missing.append("DROPBOX_REDIRECT_URI")
    return {"ready": ready, "missing": missing}


def require_org(org_id: str | None) -> str:
    if not org_id:
        raise IntegrationSyncError("org_unresolved", "No organization membership for this user", 409)
    return org_id


def get_connection(db: Any, org_id: str) -> dict | None:
    return fetch_one(
        db.table("dropbox_connections").select(CONNECTION_FIELDS).eq("org_id", org_id).limit(1),
        "dropbox_connections.lookup",
    )


def delete_connection(db: Any, org_id: str) -> int:
    rows = fetch_rows(
        db.table("dropbox_connections").delete().eq("org_id", org_id),
        "dropbox_connections.delete",
    )
    if not rows:
        raise IntegrationSyncError("not_connected", "Dropbox is not connected for this organization", 404)
    return len(rows)
