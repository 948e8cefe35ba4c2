from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Final, Mapping

OWNER: Final[str] = "owner"
ADMIN: Final[str] = "admin"
MEMBER: Final[str] = "member"
COLLABORATOR: Final[str] = "collaborator"
CLIENT: Final[str] = "client"

LEGACY_ROLE_ALIASES: Final[dict[str, str]] = {
    "freelancer": COLLABORATOR,
}

PRIVILEGED_ROLES: Final[frozenset[str]] = frozenset({OWNER, ADMIN})


@dataclass(frozen=True)
class RoleFlags:
    is_admin: bool = False
    is_owner: bool = False
    is_team: bool = False
    is_collaborator: bool = False
    is_client: bool = False


NO_ACCESS: Final[RoleFlags] = RoleFlags()

ROLE_FLAGS: Final[Mapping[str, RoleFlags]] = MappingProxyType(
    {
        OWNER: RoleFlags(is_admin=True, is_owner=True, is_team=True),
        ADMIN: RoleFlags(is_admin=True, is_team=True),
        MEMBER: RoleFlags(is_team=True),
        COLLABORATOR: RoleFlags(is_collaborator=True),
        CLIENT: RoleFlags(is_client=True),
    }
)


def normalize_role(role: str | None) -> str | None:
    raw = (role or "").strip().lower()
    if not raw:
        return None
    return LEGACY_ROLE_ALIASES.get(raw, raw)


def flags_for_role(role: str | None) -> RoleFlags:
    """Category flags for a role. Unknown roles get no special access."""
    normalized = normalize_role(role)
    if normalized is None:
        return NO_ACCESS
    return ROLE_FLAGS.get(normalized, NO_ACCESS)


def is_known_role(role: str | None) -> bool:
    return normalize_role(role) in ROLE_FLAGS


def is_privileged_role(role: str | None) -> bool:
    return normalize_role(role) in PRIVILEGED_ROLES


@dataclass(frozen=True)
class OperationPolicy:
    """What an operation class demands of the caller.

    ``team_only`` rejects client actors, ``require_team`` additionally rejects
    anyone without team status unless ``allow_collaborator`` lets
    collaborators through for that operation.
    """

    name: str
    team_only: bool = False
    require_team: bool = False
    require_admin: bool = False
    allow_collaborator: bool = False


DROPBOX_MANAGE: Final[str] = "dropbox.manage"
DROPBOX_ADMIN: Final[str] = "dropbox.admin"
ORG_DASHBOARD: Final[str] = "org.dashboard"
REVIEW_LINKS_MANAGE: Final[str] = "review_links.manage"
CLIENTS_INVITE: Final[str] = "clients.invite"
PLUGINS_READ: Final[str] = "plugins.read"

OPERATIONS: Final[Mapping[str, OperationPolicy]] = MappingProxyType(
    {
        DROPBOX_MANAGE: OperationPolicy(DROPBOX_MANAGE, team_only=True),
        DROPBOX_ADMIN: OperationPolicy(DROPBOX_ADMIN, team_only=True, require_admin=True),
        ORG_DASHBOARD: OperationPolicy(ORG_DASHBOARD, team_only=True, require_team=True),
        REVIEW_LINKS_MANAGE: OperationPolicy(
            REVIEW_LINKS_MANAGE,
            team_only=True,
            require_team=True,
            allow_collaborator=True,
        ),
        CLIENTS_INVITE: OperationPolicy(CLIENTS_INVITE, team_only=True, require_admin=True),
        PLUGINS_READ: OperationPolicy(PLUGINS_READ),
    }
)


def policy_for(operation: str) -> OperationPolicy:
    try:
        return OPERATIONS[operation]
    except KeyError:
        raise ValueError(f"Unregistered operation: {operation}") from None
