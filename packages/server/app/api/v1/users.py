"""
Org membership API endpoints.

GET    /api/v1/orgs/{orgSlug}/members              - List org members
PATCH  /api/v1/orgs/{orgSlug}/members/{userId}     - Change a member's role
DELETE /api/v1/orgs/{orgSlug}/members/{userId}     - Remove a member (or leave)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_admin, require_member
from app.core.database import get_session
from app.services import organizations as org_service
from fizz_shared.schemas.users import MemberListResponse, MemberResponse, MemberRoleUpdate

router = APIRouter()


@router.get("", response_model=MemberListResponse, tags=["Members"])
async def list_members(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """List all members of the org."""
    items = await org_service.list_members(auth.org_id, session)
    return MemberListResponse(data=[MemberResponse(**item) for item in items])


@router.patch("/{userId}", response_model=MemberResponse, tags=["Members"])
async def update_member_role(
    userId: uuid.UUID,
    body: MemberRoleUpdate,
    auth: AuthenticatedUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Change a member's role (owner/admin; only owners touch ownership)."""
    info = await org_service.update_member_role(
        auth.org_id, userId, body.role, caller_role=auth.role, session=session
    )
    return MemberResponse(**info)


@router.delete("/{userId}", status_code=204, tags=["Members"])
async def remove_member(
    userId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Remove a member (owner/admin), or leave the org when ``userId`` is yourself."""
    await org_service.remove_member(
        auth.org_id, userId, caller_id=auth.user_id, caller_role=auth.role, session=session
    )
