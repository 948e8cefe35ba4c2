from pydantic import BaseModel
from datetime import datetime


class DropboxConfigStatus(BaseModel):
    ready: bool
    missing: list[str]


class DropboxConnection(BaseModel):
    id: str
    account_email: str | None = None
    account_id: str | None = None
    token_expires_at: datetime | None = None
    last_synced_at: datetime | None = None
    updated_at: datetime | None = None


class DropboxHealthResponse(BaseModel):
    config: DropboxConfigStatus
    connected: bool
    connection: DropboxConnection | None = None
    org_id: str | None = None
