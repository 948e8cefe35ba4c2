from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal


NormalizedFuelType = Literal["diesel", "gasoline"]
NormalizedInviteRole = Literal["client_viewer", "client_approver"]


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a store timestamp into an aware UTC datetime. Garbage becomes None."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def normalize_fuel_type(value: str | None) -> NormalizedFuelType:
    if not value:
        return "diesel"
    key = str(value).strip().lower()
    mapping: dict[str, NormalizedFuelType] = {
        "diesel": "diesel",
        "gasoleo": "diesel",
        "gasoline": "gasoline",
        "petrol": "gasoline",
        "gasolina": "gasoline",
        "gasolina95": "gasoline",
    }
    return mapping.get(key, "diesel")


def normalize_country(value: str | None, default: str = "PT") -> str:
    key = (value or "").strip().upper()
    return key if len(key) == 2 and key.isalpha() else default


def normalize_invite_role(value: str | None) -> NormalizedInviteRole:
    return "client_approver" if (value or "").strip().lower() == "client_approver" else "client_viewer"


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()
