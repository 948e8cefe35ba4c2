from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from src.auth.passwords import hash_password, is_password_protected, verify_password
from src.auth.tokens import generate_token, hash_token
from src.domain.normalization import parse_timestamp
from src.domain.storage import fetch_one

REVIEW_LINK_FIELDS = (
    "id, deliverable_id, expires_at, password_hash, require_auth, single_use, "
    "allow_guest_comments, use_count, used_at, created_at"
)


class LinkRejected(Exception):
    """A presented capability token was checked and refused."""

    def __init__(self, status_code: int, message: str, *, requires_password: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.requires_password = requires_password


def clamp_expiry_days(value: int | None, *, default: int, maximum: int) -> int:
    if value is None:
        return default
    return max(1, min(maximum, int(value)))


def is_expired_at(expires_at: Any, now: datetime | None = None) -> bool:
    expires = parse_timestamp(expires_at)
    if expires is None:
        return True
    return expires <= (now or datetime.now(timezone.utc))


def build_review_link(
    *,
    deliverable_id: str,
    created_by: str,
    expires_in_days: int,
    password: str | None = None,
    require_auth: bool = False,
    single_use: bool = False,
    allow_guest_comments: bool = True,
    now: datetime | None = None,
) -> tuple[str, dict[str, Any]]:
    """Return the raw token (hand to the caller once) and the row to store."""
    raw_token = generate_token()
    now = now or datetime.now(timezone.utc)
    password = (password or "").strip()
    record = {
        "deliverable_id": deliverable_id,
        "token_hash": hash_token(raw_token),
        "password_hash": hash_password(password) if password else None,
        "expires_at": (now + timedelta(days=expires_in_days)).isoformat(),
        "require_auth": require_auth,
        "single_use": single_use,
        "allow_guest_comments": allow_guest_comments,
        "created_by": created_by,
    }
    return raw_token, record


def find_review_link(db: Any, token: str) -> dict | None:
    """Look a link up by the hash of the presented token."""
    query = db.table("review_links").select(REVIEW_LINK_FIELDS).eq("token_hash", hash_token(token)).limit(1)
    return fetch_one(query, "review_links.lookup")


def check_review_link(link: dict, *, password: str | None, now: datetime | None = None) -> None:
    if is_expired_at(link.get("expires_at"), now):
        raise LinkRejected(410, "Link expired")
    if link.get("single_use") and int(link.get("use_count") or 0) > 0:
        raise LinkRejected(410, "Link already used")
    if is_password_protected(link) and not verify_password(password or "", link["password_hash"]):
        raise LinkRejected(401, "Invalid password for this link", requires_password=True)


def resolve_review_link(
    db: Any,
    token: str,
    password: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Resolve a presented review token to its link row or raise LinkRejected.

    Order matters: an unknown token is rejected at the hash lookup and never
    reaches the password check.
    """
    if not token:
        raise LinkRejected(400, "Missing token")
    link = find_review_link(db, token)
    if not link:
        raise LinkRejected(404, "Invalid review link")
    check_review_link(link, password=password, now=now)
    return link


def mark_review_link_used(db: Any, link: dict, user_id: str | None) -> None:
    """Record a use, guarded on the ``use_count`` that was read.

    When another request consumed the link in between, no row matches and a
    single-use link is rejected as already used.
    """
    current = int(link.get("use_count") or 0)
    query = db.table("review_links").update(
        {
            "use_count": current + 1,
            "used_at": datetime.now(timezone.utc).isoformat(),
            "used_by_user_id": user_id,
        }
    ).eq("id", link["id"]).eq("use_count", current)
    updated = fetch_one(query, "review_links.mark_used")
    if updated is None and link.get("single_use"):
        raise LinkRejected(410, "Link already used")


def public_link_view(link: dict) -> dict[str, Any]:
    """Link metadata safe to return to clients. Drops hashes."""
    return {
        "id": link["id"],
        "deliverable_id": link.get("deliverable_id"),
        "expires_at": link.get("expires_at"),
        "require_auth": bool(link.get("require_auth")),
        "single_use": bool(link.get("single_use")),
        "allow_guest_comments": bool(link.get("allow_guest_comments", True)),
        "has_password": is_password_protected(link),
        "use_count": int(link.get("use_count") or 0),
        "used_at": link.get("used_at"),
        "created_at": link.get("created_at"),
    }
