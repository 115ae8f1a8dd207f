"""
Organization API endpoints.

GET    /api/v1/orgs              - List orgs for the authenticated user
POST   /api/v1/orgs              - Create a new org (caller becomes owner)
POST   /api/v1/orgs/active       - Switch the caller's active org
GET    /api/v1/orgs/{orgSlug}    - Get org details
PATCH  /api/v1/orgs/{orgSlug}    - Update org name/description
DELETE /api/v1/orgs/{orgSlug}    - Soft-delete the org
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    AuthenticatedUser,
    get_current_profile,
    require_admin,
    require_member,
    require_owner,
)
from app.core.database import get_session
from app.models.profile import Profile
from app.services import organizations as org_service
from fizz_shared.schemas.organizations import (
    ActiveOrgRequest,
    OrgCreateRequest,
    OrgListItem,
    OrgListResponse,
    OrgResponse,
    OrgUpdateRequest,
)

log = structlog.get_logger()

# ---------------------------------------------------------------------------
# Non-org-scoped routes (no orgSlug in path)
# ---------------------------------------------------------------------------
router_global = APIRouter()


@router_global.get("/orgs", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    profile: Profile = Depends(get_current_profile),
    session: AsyncSession = Depends(get_session),
):
    """List orgs the authenticated user belongs to."""
    items = await org_service.list_user_orgs(profile.id, session)
    return OrgListResponse(data=items)


@router_global.post("/orgs", response_model=OrgResponse, status_code=201, tags=["Organizations"])
async def create_org(
    body: OrgCreateRequest,
    profile: Profile = Depends(get_current_profile),
    session: AsyncSession = Depends(get_session),
):
    """Create a new organization. The creator becomes its owner."""
    org = await org_service.create_org(body, profile, session)
    return OrgResponse.model_validate(org)


@router_global.post("/orgs/active", response_model=OrgListItem, tags=["Organizations"])
async def switch_active_org(
    body: ActiveOrgRequest,
    profile: Profile = Depends(get_current_profile),
    session: AsyncSession = Depends(get_session),
):
    """Make another org the caller's active one."""
    return await org_service.switch_active_org(profile, body.org_slug, session)


# ---------------------------------------------------------------------------
# Org-scoped routes (orgSlug in path)
# ---------------------------------------------------------------------------
router_scoped = APIRouter()


@router_scoped.get("", response_model=OrgResponse, tags=["Organizations"])
async def get_org(
    auth: AuthenticatedUser = Depends(require_member),
):
    return OrgResponse.model_validate(auth.org)


@router_scoped.patch("", response_model=OrgResponse, tags=["Organizations"])
async def update_org(
    body: OrgUpdateRequest,
    auth: AuthenticatedUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Update org name or description (owner/admin)."""
    org = await org_service.update_org(auth.org, body, session)
    return OrgResponse.model_validate(org)


@router_scoped.delete("", status_code=204, tags=["Organizations"])
async def delete_org(
    auth: AuthenticatedUser = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    """Soft-delete the org (owner only)."""
    await org_service.delete_org(auth.org, session)
