"""Invitation schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, UUID4, field_validator

from .common import Role


class InviteState(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


def normalize_invite_emails(emails: List[str]) -> List[str]:
    """Keep non-blank entries containing '@', lowercased, first occurrence wins."""
    result: list[str] = []
    for email in emails:
        cleaned = email.strip().lower()
        if cleaned and "@" in cleaned and cleaned not in result:
            result.append(cleaned)
    return result


class InviteCreate(BaseModel):
    emails: List[str] = Field(..., min_length=1, max_length=50)
    role: Role = Role.CONTRIBUTOR

    @field_validator("emails")
    @classmethod
    def keep_valid_emails(cls, v: List[str]) -> List[str]:
        valid = normalize_invite_emails(v)
        if not valid:
            raise ValueError("Please enter at least one valid email")
        return valid

    @field_validator("role")
    @classmethod
    def no_owner_invites(cls, v: Role) -> Role:
        if v == Role.OWNER:
            raise ValueError("Ownership cannot be granted by invitation")
        return v


class InviteRead(BaseModel):
    id: UUID4
    org_id: UUID4
    email: str
    role: Role
    state: InviteState
    expires_at: datetime
    created_by: UUID4
    created_at: datetime
    accepted_at: Optional[datetime] = None
    accepted_by: Optional[UUID4] = None


class InviteCreated(InviteRead):
    """Returned to the inviter only: carries the token and accept link."""
    token: str
    accept_url: str


class InviteCreateResponse(BaseModel):
    data: List[InviteCreated]


class InviteListResponse(BaseModel):
    data: List[InviteRead]


class InvitePreview(BaseModel):
    org_name: str
    org_slug: str
    email: str
    role: Role
    state: InviteState
    expires_at: datetime


class InviteAcceptResponse(BaseModel):
    org_id: UUID4
    org_slug: str
    org_name: str
    role: Role
    message: str
