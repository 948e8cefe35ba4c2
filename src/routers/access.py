from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from src.auth import AccessDecision, Identity, get_current_identity, get_optional_identity, resolve_access
from src.auth.dependencies import get_org_selector
from src.db import supabase
from src.models.access import AccessDecisionResponse, OrgRoleResponse

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/org-role", response_model=OrgRoleResponse)
async def get_org_role(
    identity: Identity | None = Depends(get_optional_identity),
    org_id: str | None = Depends(get_org_selector),
):
    """Current user's org role. Membership row wins over the app_metadata hint."""
    if identity is None:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"role": None, "isAdmin": False},
        )

    decision = await resolve_access(supabase, identity, org_id)
    return OrgRoleResponse(role=decision.role, is_admin=decision.is_admin, is_owner=decision.is_owner)


@router.get("/resolve-access", response_model=AccessDecisionResponse)
async def get_resolved_access(
    identity: Identity = Depends(get_current_identity),
    org_id: str | None = Depends(get_org_selector),
):
    """Full access decision for routing the caller to the right surface."""
    decision: AccessDecision = await resolve_access(supabase, identity, org_id)
    return AccessDecisionResponse(
        user_id=identity.user_id,
        role=decision.role,
        org_id=decision.org_id,
        is_admin=decision.is_admin,
        is_owner=decision.is_owner,
        is_team=decision.is_team,
        is_collaborator=decision.is_collaborator,
        is_client=decision.is_client,
        source=decision.source,
    )
