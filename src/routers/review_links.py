import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from src.auth import Allow, Identity, get_optional_identity, require_operation
from src.auth.roles import REVIEW_LINKS_MANAGE
from src.auth.tokens import mask_for_display
from src.config import settings
from src.db import supabase
from src.domain.project_access import get_project_access, get_project_for_deliverable
from src.domain.review_links import (
    REVIEW_LINK_FIELDS,
    LinkRejected,
    build_review_link,
    clamp_expiry_days,
    mark_review_link_used,
    public_link_view,
    resolve_review_link,
)
from src.domain.storage import fetch_one, fetch_rows
from src.models.review_links import (
    ReviewLinkAccessResponse,
    ReviewLinkCreate,
    ReviewLinkCreateResponse,
    ReviewLinkResponse,
)
from src.observability import incr_metric, log_event

router = APIRouter(tags=["review-links"])


def _require_writable_deliverable(deliverable_id: str, actor: Allow) -> tuple[dict, dict]:
    found = get_project_for_deliverable(supabase, deliverable_id)
    if not found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deliverable not found")
    deliverable, project = found
    access = get_project_access(supabase, project, actor.user_id)
    if not access.can_write:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No write access to this project")
    return deliverable, project


@router.post(
    "/api/review/links",
    response_model=ReviewLinkCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_review_link(
    data: ReviewLinkCreate,
    actor: Allow = Depends(require_operation(REVIEW_LINKS_MANAGE)),
):
    """Issue a review link. The raw token is only visible in this response."""
    deliverable_id = data.deliverable_id.strip()
    if not deliverable_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="deliverable_id is required")
    _, project = _require_writable_deliverable(deliverable_id, actor)

    expires_in_days = clamp_expiry_days(
        data.expires_in_days,
        default=settings.review_link_default_expiry_days,
        maximum=settings.review_link_max_expiry_days,
    )
    raw_token, record = build_review_link(
        deliverable_id=deliverable_id,
        created_by=actor.user_id,
        expires_in_days=expires_in_days,
        password=data.password,
        require_auth=data.require_auth,
        single_use=data.single_use,
        allow_guest_comments=data.allow_guest_comments,
    )

    link = fetch_one(supabase.table("review_links").insert(record), "review_links.insert")
    if not link:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create link")

    token_preview = mask_for_display(raw_token)
    incr_metric("review_links.created", password=bool(record["password_hash"]))
    log_event(
        "review_link_created",
        link_id=link.get("id"),
        deliverable_id=deliverable_id,
        project_id=project.get("id"),
        actor_id=actor.user_id,
        token_preview=token_preview,
        single_use=data.single_use,
        require_auth=data.require_auth,
    )

    return ReviewLinkCreateResponse(
        link=ReviewLinkResponse(**public_link_view({**record, **link})),
        share_url=f"{settings.public_site_url.rstrip('/')}/review-link/{raw_token}",
        token_preview=token_preview,
    )


@router.get("/api/review/links", response_model=list[ReviewLinkResponse])
async def list_review_links(
    deliverable_id: str = Query(...),
    actor: Allow = Depends(require_operation(REVIEW_LINKS_MANAGE)),
):
    """List links for a deliverable (metadata only, never token hashes)."""
    _require_writable_deliverable(deliverable_id, actor)
    rows = fetch_rows(
        supabase.table("review_links").select(REVIEW_LINK_FIELDS).eq("deliverable_id", deliverable_id).order(
            "created_at", desc=True
        ),
        "review_links.list",
    )
    return [public_link_view(row) for row in rows]


def _rejected(token: str, exc: LinkRejected) -> HTTPException:
    incr_metric("review_links.rejected", status_code=exc.status_code)
    log_event(
        "review_link_rejected",
        level=logging.INFO,
        token_preview=mask_for_display(token),
        status_code=exc.status_code,
        reason=exc.message,
    )
    return HTTPException(
        status_code=exc.status_code,
        detail={"error": exc.message, "requires_password": exc.requires_password},
    )


@router.get("/api/review-link/{token}", response_model=ReviewLinkAccessResponse)
async def open_review_link(
    token: str,
    password: str | None = Query(None),
    x_review_password: str | None = Header(None),
    identity: Identity | None = Depends(get_optional_identity),
):
    """Open a review link by possession of its token, plus password when one is set."""
    try:
        link = resolve_review_link(supabase, token, x_review_password or password)
    except LinkRejected as exc:
        raise _rejected(token, exc)

    if link.get("require_auth") and identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Authentication required for this link", "requires_password": False},
        )

    found = get_project_for_deliverable(supabase, link["deliverable_id"])
    if not found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deliverable not found")
    deliverable, project = found

    if link.get("require_auth") and identity is not None:
        access = get_project_access(supabase, project, identity.user_id)
        if not access.can_read:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No access to this project")

    if link.get("single_use"):
        try:
            mark_review_link_used(supabase, link, identity.user_id if identity else None)
        except LinkRejected as exc:
            raise _rejected(token, exc)

    return ReviewLinkAccessResponse(
        deliverable=deliverable,
        link=ReviewLinkResponse(**public_link_view(link)),
        viewer_user_id=identity.user_id if identity else None,
    )
