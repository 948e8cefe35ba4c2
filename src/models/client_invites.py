from pydantic import BaseModel, EmailStr
from datetime import datetime


class ClientInviteCreate(BaseModel):
    client_id: str
    email: EmailStr
    role: str | None = None
    expires_in_days: int | None = None


class ClientInviteCreateResponse(BaseModel):
    id: str | None = None
    invite_url: str  # Contains the raw token, only returned on creation
    token_preview: str
    expires_at: datetime


class ClientInvitePreview(BaseModel):
    email_masked: str
    role: str
    client_name: str | None = None
    expires_at: datetime


class ClientInviteAccept(BaseModel):
    token: str
    password: str
    full_name: str | None = None


class ClientInviteAcceptResponse(BaseModel):
    ok: bool = True
    email: str
