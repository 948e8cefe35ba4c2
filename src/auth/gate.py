from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from src.auth.context import AccessDecision
from src.auth.roles import OperationPolicy


class DenyReason(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN_CLIENT = "forbidden:client"
    FORBIDDEN_NOT_TEAM = "forbidden:not-team"
    FORBIDDEN_INSUFFICIENT_ROLE = "forbidden:insufficient-role"


_DENY_MESSAGES: dict[DenyReason, str] = {
    DenyReason.UNAUTHENTICATED: "Not authenticated",
    DenyReason.FORBIDDEN_CLIENT: "Clients cannot perform this operation",
    DenyReason.FORBIDDEN_NOT_TEAM: "Team membership required",
    DenyReason.FORBIDDEN_INSUFFICIENT_ROLE: "Owner or admin role required",
}


@dataclass(frozen=True)
class Allow:
    user_id: str
    role: str | None
    org_id: str | None

    allowed = True


@dataclass(frozen=True)
class Deny:
    reason: DenyReason
    operation: str

    allowed = False

    @property
    def status_code(self) -> int:
        return 401 if self.reason is DenyReason.UNAUTHENTICATED else 403

    @property
    def message(self) -> str:
        return _DENY_MESSAGES[self.reason]


def require_privileged_actor(decision: AccessDecision, policy: OperationPolicy) -> Allow | Deny:
    """Decide whether ``decision`` may perform ``policy``. Performs no I/O."""
    if not decision.authenticated:
        return Deny(DenyReason.UNAUTHENTICATED, policy.name)

    if decision.is_client and policy.team_only:
        return Deny(DenyReason.FORBIDDEN_CLIENT, policy.name)

    if policy.require_admin and not decision.is_admin:
        return Deny(DenyReason.FORBIDDEN_INSUFFICIENT_ROLE, policy.name)

    if policy.require_team and not decision.is_team:
        if not (policy.allow_collaborator and decision.is_collaborator):
            return Deny(DenyReason.FORBIDDEN_NOT_TEAM, policy.name)

    assert decision.user_id is not None
    return Allow(user_id=decision.user_id, role=decision.role, org_id=decision.org_id)
