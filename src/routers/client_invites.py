import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from src.auth import Allow, require_operation
from src.auth.roles import CLIENTS_INVITE
from src.auth.tokens import mask_email, mask_for_display
from src.config import settings
from src.db import supabase
from src.domain.client_invites import build_client_invite, mark_client_invite_used, resolve_client_invite
from src.domain.normalization import normalize_email, normalize_invite_role
from src.domain.review_links import LinkRejected, clamp_expiry_days
from src.domain.storage import fetch_one
from src.models.client_invites import (
    ClientInviteAccept,
    ClientInviteAcceptResponse,
    ClientInviteCreate,
    ClientInviteCreateResponse,
    ClientInvitePreview,
)
from src.observability import incr_metric, log_event

router = APIRouter(prefix="/api/clients/invites", tags=["client-invites"])


def _resolve_or_raise(token: str) -> dict:
    try:
        return resolve_client_invite(supabase, token)
    except LinkRejected as exc:
        incr_metric("client_invites.rejected", status_code=exc.status_code)
        raise HTTPException(status_code=exc.status_code, detail=exc.message)


@router.post("", response_model=ClientInviteCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_client_invite(
    data: ClientInviteCreate,
    actor: Allow = Depends(require_operation(CLIENTS_INVITE)),
):
    """Invite a client contact to the portal. Owner/admin only."""
    client_id = data.client_id.strip()
    if not client_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="client_id is required")

    client = fetch_one(
        supabase.table("clients").select("id, deleted_at").eq("id", client_id).limit(1),
        "clients.lookup",
    )
    if not client or client.get("deleted_at"):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found or inactive")

    expires_in_days = clamp_expiry_days(
        data.expires_in_days,
        default=settings.client_invite_default_expiry_days,
        maximum=settings.client_invite_max_expiry_days,
    )
    raw_token, record = build_client_invite(
        client_id=client_id,
        email=normalize_email(data.email),
        role=normalize_invite_role(data.role),
        invited_by=actor.user_id,
        expires_in_days=expires_in_days,
    )
    invite = fetch_one(supabase.table("client_invites").insert(record), "client_invites.insert")

    token_preview = mask_for_display(raw_token)
    log_event(
        "client_invite_created",
        invite_id=(invite or {}).get("id"),
        client_id=client_id,
        email_masked=mask_email(record["email"]),
        actor_id=actor.user_id,
        token_preview=token_preview,
    )

    return ClientInviteCreateResponse(
        id=(invite or {}).get("id"),
        invite_url=f"{settings.public_site_url.rstrip('/')}/portal/invite?token={raw_token}",
        token_preview=token_preview,
        expires_at=record["expires_at"],
    )


@router.get("", response_model=ClientInvitePreview)
async def preview_client_invite(token: str = Query(...)):
    """Public invite preview. Shows a masked email only."""
    invite = _resolve_or_raise(token)
    client = fetch_one(
        supabase.table("clients").select("name").eq("id", invite["client_id"]).limit(1),
        "clients.lookup",
    )
    return ClientInvitePreview(
        email_masked=mask_email(invite["email"]),
        role=invite["role"],
        client_name=(client or {}).get("name"),
        expires_at=invite["expires_at"],
    )


@router.post("/accept", response_model=ClientInviteAcceptResponse)
async def accept_client_invite(data: ClientInviteAccept):
    """Redeem an invite: create the portal account and bind it to the client."""
    token = data.token.strip()
    if not token or not data.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token and password are required")
    if len(data.password) < settings.client_invite_min_password_length:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {settings.client_invite_min_password_length} characters",
        )

    invite = _resolve_or_raise(token)

    attributes = {"email": invite["email"], "password": data.password, "email_confirm": True}
    full_name = (data.full_name or "").strip()
    if full_name:
        attributes["user_metadata"] = {"full_name": full_name}
    try:
        created = supabase.auth.admin.create_user(attributes)
    except Exception as exc:
        message = str(exc)
        log_event("client_invite_account_failed", level=logging.WARNING, invite_id=invite["id"], error=message)
        if "already" in message.lower():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="An account already exists for this email. Use the portal login.",
            )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message or "Failed to create account")

    user = getattr(created, "user", None)
    if user is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to create account")
    user_id = str(user.id)

    fetch_one(
        supabase.table("client_users").upsert(
            {"client_id": invite["client_id"], "user_id": user_id, "role": invite["role"]},
            on_conflict="client_id,user_id",
        ),
        "client_users.upsert",
    )
    mark_client_invite_used(supabase, invite, user_id)

    incr_metric("client_invites.accepted")
    log_event("client_invite_accepted", invite_id=invite["id"], client_id=invite["client_id"], user_id=user_id)
    return ClientInviteAcceptResponse(email=invite["email"])
