"""Access role resolution.

A user's role is looked up through an ordered chain of sources. Durable
membership rows are authoritative; the ``app_metadata.role`` hint attached to
the identity is cheap but can lag behind membership changes, so it only
counts when no authoritative source has a row. The first authoritative claim
wins; otherwise the first non-authoritative claim; otherwise no role.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from src.auth.context import AccessDecision, Identity
from src.auth.roles import CLIENT, COLLABORATOR, normalize_role
from src.domain.storage import fetch_rows
from src.observability import incr_metric, log_event


@dataclass(frozen=True)
class RoleClaim:
    role: str
    org_id: str | None
    authoritative: bool
    source: str


RoleSource = Callable[[Any, Identity, "str | None"], "RoleClaim | None"]


def team_membership_source(db: Any, identity: Identity, org_id: str | None) -> RoleClaim | None:
    query = db.table("team_members").select("role, org_id").eq("user_id", identity.user_id)
    if org_id:
        query = query.eq("org_id", org_id)
    # Without an org selector, the oldest membership is the home org.
    rows = fetch_rows(query.order("created_at").limit(1), "team_members.lookup")
    if not rows:
        return None
    role = normalize_role(rows[0].get("role"))
    if role is None:
        return None
    return RoleClaim(role=role, org_id=rows[0].get("org_id"), authoritative=True, source="team_members")


def role_hint_source(db: Any, identity: Identity, org_id: str | None) -> RoleClaim | None:
    if not identity.role_hint:
        return None
    return RoleClaim(role=identity.role_hint, org_id=None, authoritative=False, source="app_metadata")


def client_membership_source(db: Any, identity: Identity, org_id: str | None) -> RoleClaim | None:
    query = db.table("client_users").select("id, client_id").eq("user_id", identity.user_id).limit(1)
    if not fetch_rows(query, "client_users.lookup"):
        return None
    return RoleClaim(role=CLIENT, org_id=None, authoritative=True, source="client_users")


def project_membership_source(db: Any, identity: Identity, org_id: str | None) -> RoleClaim | None:
    query = db.table("project_members").select("id").eq("user_id", identity.user_id).limit(1)
    if not fetch_rows(query, "project_members.lookup"):
        return None
    return RoleClaim(role=COLLABORATOR, org_id=None, authoritative=True, source="project_members")


DEFAULT_ROLE_SOURCES: tuple[RoleSource, ...] = (
    team_membership_source,
    role_hint_source,
    client_membership_source,
    project_membership_source,
)


async def resolve_access(
    db: Any,
    identity: Identity | None,
    org_id: str | None = None,
    sources: Sequence[RoleSource] = DEFAULT_ROLE_SOURCES,
) -> AccessDecision:
    """Resolve the caller's role and org scope.

    A missing membership is a valid outcome (``role=None``). Store failures
    raise ``StorageError`` and must not be read as a denial.
    """
    if identity is None:
        return AccessDecision.anonymous()

    chosen: RoleClaim | None = None
    for source in sources:
        claim = source(db, identity, org_id)
        if claim is None:
            continue
        if claim.authoritative:
            chosen = claim
            break
        if chosen is None:
            chosen = claim

    if chosen is None:
        decision = AccessDecision.for_role(identity.user_id, None)
    else:
        decision = AccessDecision.for_role(
            identity.user_id,
            chosen.role,
            org_id=chosen.org_id,
            source=chosen.source,
        )

    incr_metric("access.resolved", source=decision.source or "none")
    log_event(
        "access_resolved",
        level=logging.DEBUG,
        user_id=identity.user_id,
        role=decision.role,
        org_id=decision.org_id,
        source=decision.source,
    )
    return decision
