from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from src.auth.tokens import generate_token, hash_token
from src.domain.review_links import LinkRejected, is_expired_at
from src.domain.storage import fetch_one

CLIENT_INVITE_FIELDS = "id, client_id, email, role, expires_at, used_at"


def build_client_invite(
    *,
    client_id: str,
    email: str,
    role: str,
    invited_by: str,
    expires_in_days: int,
    now: datetime | None = None,
) -> tuple[str, dict[str, Any]]:
    raw_token = generate_token()
    now = now or datetime.now(timezone.utc)
    record = {
        "client_id": client_id,
        "email": email,
        "role": role,
        "token_hash": hash_token(raw_token),
        "invited_by": invited_by,
        "expires_at": (now + timedelta(days=expires_in_days)).isoformat(),
    }
    return raw_token, record


def resolve_client_invite(db: Any, token: str, now: datetime | None = None) -> dict:
    """Resolve a presented invite token to a pending invite or raise LinkRejected."""
    if not token:
        raise LinkRejected(400, "Missing token")
    invite = fetch_one(
        db.table("client_invites").select(CLIENT_INVITE_FIELDS).eq("token_hash", hash_token(token)).limit(1),
        "client_invites.lookup",
    )
    if not invite:
        raise LinkRejected(404, "Invalid invite")
    if invite.get("used_at"):
        raise LinkRejected(410, "Invite already used")
    if is_expired_at(invite.get("expires_at"), now):
        raise LinkRejected(410, "Invite expired")
    return invite


def mark_client_invite_used(db: Any, invite: dict, user_id: str) -> None:
    fetch_one(
        db.table("client_invites").update(
            {
                "used_at": datetime.now(timezone.utc).isoformat(),
                "used_by_user_id": user_id,
            }
        ).eq("id", invite["id"]),
        "client_invites.mark_used",
    )
