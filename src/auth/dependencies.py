import logging

from fastapi import Depends, Header, HTTPException, status
from src.auth.context import AccessDecision, Identity
from src.auth.gate import Allow, require_privileged_actor
from src.auth.jwt import decode_access_token
from src.auth.resolver import resolve_access
from src.auth.roles import policy_for
from src.db import supabase
from src.observability import incr_metric, log_event


def _extract_bearer_token(authorization: str | None) -> str | None:
    """Extract token from 'Bearer <token>' header."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


async def get_optional_identity(authorization: str | None = Header(None)) -> Identity | None:
    """Identity if a valid bearer token was sent, else None. For public routes."""
    token = _extract_bearer_token(authorization)
    if not token:
        return None
    claims = decode_access_token(token)
    if not claims:
        return None
    return Identity.from_claims(claims)


async def get_current_identity(authorization: str | None = Header(None)) -> Identity:
    token = _extract_bearer_token(authorization)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
        )

    claims = decode_access_token(token)
    if not claims:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
        )

    return Identity.from_claims(claims)


def get_org_selector(x_org_id: str | None = Header(None)) -> str | None:
    """``X-Org-Id`` picks the organization for users who belong to more than one."""
    return (x_org_id or "").strip() or None


async def get_access_decision(
    identity: Identity | None = Depends(get_optional_identity),
    org_id: str | None = Depends(get_org_selector),
) -> AccessDecision:
    """Role and org scope for the caller. Anonymous callers get an unauthenticated decision."""
    return await resolve_access(supabase, identity, org_id)


def require_operation(operation: str):
    policy = policy_for(operation)

    async def _require(decision: AccessDecision = Depends(get_access_decision)) -> Allow:
        outcome = require_privileged_actor(decision, policy)
        if isinstance(outcome, Allow):
            return outcome
        incr_metric("access.denied", operation=operation, reason=outcome.reason)
        log_event(
            "access_denied",
            level=logging.INFO,
            operation=operation,
            reason=outcome.reason,
            user_id=decision.user_id,
            role=decision.role,
        )
        raise HTTPException(status_code=outcome.status_code, detail=outcome.message)

    return _require
