"""
Invitation endpoints.

POST   /api/v1/orgs/{orgSlug}/invites             - Invite emails (owner/admin/manager)
GET    /api/v1/orgs/{orgSlug}/invites             - List invites (members)
DELETE /api/v1/orgs/{orgSlug}/invites/{inviteId}  - Revoke a pending invite
GET    /api/v1/invites/{token}                    - Preview (no auth)
POST   /api/v1/invites/{token}/accept             - Accept as the signed-in user
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_current_profile, require_manager, require_member
from app.core.database import get_session
from app.models.profile import Profile
from app.services import invites as invite_service
from fizz_shared.schemas.invites import (
    InviteAcceptResponse,
    InviteCreate,
    InviteCreateResponse,
    InviteListResponse,
    InvitePreview,
)

router = APIRouter()
router_global = APIRouter()


@router.post("", response_model=InviteCreateResponse, status_code=201)
async def create_invites(
    invite_in: InviteCreate,
    auth: AuthenticatedUser = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    created = await invite_service.create_invites(session, auth.org_id, invite_in, auth.user_id)
    return InviteCreateResponse(data=created)


@router.get("", response_model=InviteListResponse)
async def list_invites(
    pending_only: bool = False,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    items = await invite_service.list_invites(session, auth.org_id, pending_only)
    return InviteListResponse(data=items)


@router.delete("/{inviteId}", status_code=204)
async def revoke_invite(
    inviteId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    await invite_service.revoke_invite(session, auth.org_id, inviteId)


@router_global.get("/invites/{token}", response_model=InvitePreview, tags=["Invites"])
async def preview_invite(
    token: str,
    session: AsyncSession = Depends(get_session),
):
    """What an invite link grants, shown before signing in."""
    return await invite_service.preview_invite(session, token)


@router_global.post("/invites/{token}/accept", response_model=InviteAcceptResponse, tags=["Invites"])
async def accept_invite(
    token: str,
    profile: Profile = Depends(get_current_profile),
    session: AsyncSession = Depends(get_session),
):
    invite, org = await invite_service.accept_invite(session, token, profile)
    return InviteAcceptResponse(
        org_id=org.id,
        org_slug=org.slug,
        org_name=org.name,
        role=invite.role,
        message=f"Welcome to {org.name}",
    )
