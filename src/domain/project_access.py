from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from src.auth.roles import ADMIN, OWNER, normalize_role
from src.domain.storage import fetch_one

PROJECT_WRITER_ROLES = frozenset({"owner", "admin", "editor"})
PROJECT_APPROVER_ROLES = frozenset({"owner", "admin", "client_approver"})


@dataclass(frozen=True)
class ProjectAccess:
    can_read: bool
    can_write: bool
    can_approve: bool
    project_member_role: str | None = None
    team_role: str | None = None
    is_client_user: bool = False


def get_project_for_deliverable(db: Any, deliverable_id: str) -> tuple[dict, dict] | None:
    """Return ``(deliverable, project)`` rows or None if either is missing."""
    deliverable = fetch_one(
        db.table("deliverables").select("id, project_id, title, status").eq("id", deliverable_id).limit(1),
        "deliverables.lookup",
    )
    if not deliverable or not deliverable.get("project_id"):
        return None
    project = fetch_one(
        db.table("projects").select("id, client_id, user_id, owner_user_id").eq(
            "id", deliverable["project_id"]
        ).limit(1),
        "projects.lookup",
    )
    if not project:
        return None
    return deliverable, project


def get_project_access(db: Any, project: dict, user_id: str) -> ProjectAccess:
    member = fetch_one(
        db.table("project_members").select("role").eq("project_id", project["id"]).eq("user_id", user_id).limit(1),
        "project_members.lookup",
    )
    team = fetch_one(
        db.table("team_members").select("role").eq("user_id", user_id).limit(1),
        "team_members.lookup",
    )
    is_client_user = False
    if project.get("client_id"):
        is_client_user = (
            fetch_one(
                db.table("client_users").select("id").eq("client_id", project["client_id"]).eq(
                    "user_id", user_id
                ).limit(1),
                "client_users.lookup",
            )
            is not None
        )

    member_role = (member or {}).get("role")
    team_role = normalize_role((team or {}).get("role"))
    is_team_admin = team_role in (OWNER, ADMIN)
    is_project_owner = user_id in (project.get("owner_user_id"), project.get("user_id"))

    can_write = is_team_admin or member_role in PROJECT_WRITER_ROLES or is_project_owner
    can_read = can_write or is_client_user or member_role is not None or team_role is not None
    can_approve = is_team_admin or member_role in PROJECT_APPROVER_ROLES or is_project_owner
    return ProjectAccess(
        can_read=can_read,
        can_write=can_write,
        can_approve=can_approve,
        project_member_role=member_role,
        team_role=team_role,
        is_client_user=is_client_user,
    )
