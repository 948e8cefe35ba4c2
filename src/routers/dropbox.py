import logging

from fastapi import APIRouter, Depends, status
from src.auth import AccessDecision, Allow, get_access_decision, require_privileged_actor
from src.auth.roles import DROPBOX_ADMIN, DROPBOX_MANAGE, policy_for
from src.config import settings
from src.db import supabase
from src.domain import dropbox as dropbox_domain
from src.domain.errors import IntegrationSyncError, StorageError
from src.models.dropbox import DropboxHealthResponse
from src.observability import incr_metric, log_event

router = APIRouter(prefix="/api/dropbox", tags=["dropbox"])


def require_dropbox_manager(require_admin: bool = False):
    """Gate for Dropbox endpoints. Denials use the integration error body."""
    policy = policy_for(DROPBOX_ADMIN if require_admin else DROPBOX_MANAGE)

    async def _require(decision: AccessDecision = Depends(get_access_decision)) -> Allow:
        outcome = require_privileged_actor(decision, policy)
        if isinstance(outcome, Allow):
            return outcome
        incr_metric("access.denied", operation=policy.name, reason=outcome.reason)
        raise IntegrationSyncError(outcome.reason.value, outcome.message, outcome.status_code)

    return _require


@router.get("/health", response_model=DropboxHealthResponse)
async def dropbox_health(actor: Allow = Depends(require_dropbox_manager())):
    """Config readiness and the org's connection, if any."""
    connection = None
    try:
        if actor.org_id:
            connection = dropbox_domain.get_connection(supabase, actor.org_id)
    except (IntegrationSyncError, StorageError):
        raise
    except Exception as exc:
        raise IntegrationSyncError("health_failed", str(exc) or "Dropbox health check failed") from exc

    return DropboxHealthResponse(
        config=dropbox_domain.config_status(settings),
        connected=connection is not None,
        connection=connection,
        org_id=actor.org_id,
    )


@router.delete("/connection", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_dropbox(actor: Allow = Depends(require_dropbox_manager(require_admin=True))):
    """Remove the org's Dropbox connection. Owner/admin only."""
    org_id = dropbox_domain.require_org(actor.org_id)
    try:
        removed = dropbox_domain.delete_connection(supabase, org_id)
    except (IntegrationSyncError, StorageError):
        raise
    except Exception as exc:
        raise IntegrationSyncError("disconnect_failed", str(exc) or "Dropbox disconnect failed") from exc

    log_event("dropbox_disconnected", level=logging.INFO, org_id=org_id, actor_id=actor.user_id, removed=removed)
    return None
