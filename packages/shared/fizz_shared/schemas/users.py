"""Profile and org membership schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, EmailStr, Field, UUID4

from .common import Role


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class ProfileUpdateRequest(BaseModel):
    """Update the caller's own profile."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    avatar_url: Optional[str] = None
    github_username: Optional[str] = Field(default=None, max_length=39)


class MemberRoleUpdate(BaseModel):
    """Change a member's role within the org."""
    role: Role


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class ProfileResponse(BaseModel):
    id: UUID4
    email: EmailStr
    name: str
    avatar_url: Optional[str] = None
    github_username: Optional[str] = None
    org_id: Optional[UUID4] = None
    last_active_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MembershipRead(BaseModel):
    org_id: UUID4
    org_slug: str
    org_name: str
    role: Role


class MeResponse(BaseModel):
    profile: ProfileResponse
    memberships: List[MembershipRead]


class MemberResponse(BaseModel):
    """A user's membership in an org."""
    user_id: UUID4
    email: str
    name: str
    avatar_url: Optional[str] = None
    role: Role
    joined_at: Optional[datetime] = None


class MemberListResponse(BaseModel):
    data: List[MemberResponse]
