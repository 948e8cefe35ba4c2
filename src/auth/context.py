from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from src.auth.roles import flags_for_role, normalize_role


@dataclass(frozen=True)
class Identity:
    """Authenticated user as asserted by the identity provider."""
    user_id: str
    email: str | None = None
    role_hint: str | None = None  # app_metadata.role, set at provisioning

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "Identity":
        app_metadata = claims.get("app_metadata") or {}
        hint = app_metadata.get("role") if isinstance(app_metadata, dict) else None
        return cls(
            user_id=str(claims["sub"]),
            email=claims.get("email"),
            role_hint=normalize_role(hint if isinstance(hint, str) else None),
        )


@dataclass(frozen=True)
class AccessDecision:
    """Derived per request, never persisted."""
    user_id: str | None
    role: str | None = None
    org_id: str | None = None
    is_admin: bool = False
    is_owner: bool = False
    is_team: bool = False
    is_collaborator: bool = False
    is_client: bool = False
    source: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None

    @classmethod
    def anonymous(cls) -> "AccessDecision":
        return cls(user_id=None)

    @classmethod
    def for_role(
        cls,
        user_id: str,
        role: str | None,
        org_id: str | None = None,
        source: str | None = None,
    ) -> "AccessDecision":
        role = normalize_role(role)
        flags = flags_for_role(role)
        return cls(
            user_id=user_id,
            role=role,
            org_id=org_id,
            is_admin=flags.is_admin,
            is_owner=flags.is_owner,
            is_team=flags.is_team,
            is_collaborator=flags.is_collaborator,
            is_client=flags.is_client,
            source=source,
        )
