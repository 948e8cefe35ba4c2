from pydantic import BaseModel
from datetime import datetime


class ReviewLinkCreate(BaseModel):
    deliverable_id: str
    expires_in_days: int | None = None
    password: str | None = None
    single_use: bool = False
    require_auth: bool = False
    allow_guest_comments: bool = True


class ReviewLinkResponse(BaseModel):
    id: str
    deliverable_id: str | None
    expires_at: datetime | None
    require_auth: bool
    single_use: bool
    allow_guest_comments: bool
    has_password: bool
    use_count: int = 0
    used_at: datetime | None = None
    created_at: datetime | None = None


class ReviewLinkCreateResponse(BaseModel):
    link: ReviewLinkResponse
    share_url: str  # Contains the raw token, only returned on creation
    token_preview: str


class ReviewDeliverable(BaseModel):
    id: str
    project_id: str | None = None
    title: str | None = None
    status: str | None = None


class ReviewLinkAccessResponse(BaseModel):
    deliverable: ReviewDeliverable
    link: ReviewLinkResponse
    viewer_user_id: str | None = None
