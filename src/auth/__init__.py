from src.auth.context import AccessDecision, Identity
from src.auth.dependencies import (
    get_access_decision,
    get_current_identity,
    get_optional_identity,
    require_operation,
)
from src.auth.gate import Allow, Deny, DenyReason, require_privileged_actor
from src.auth.resolver import resolve_access

__all__ = [
    "AccessDecision",
    "Identity",
    "Allow",
    "Deny",
    "DenyReason",
    "get_access_decision",
    "get_current_identity",
    "get_optional_identity",
    "require_operation",
    "require_privileged_actor",
    "resolve_access",
]
