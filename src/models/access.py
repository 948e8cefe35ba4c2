from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class OrgRoleResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    role: str | None
    is_admin: bool
    is_owner: bool


class AccessDecisionResponse(BaseModel):
    user_id: str
    role: str | None
    org_id: str | None
    is_admin: bool
    is_owner: bool
    is_team: bool
    is_collaborator: bool
    is_client: bool
    source: str | None
