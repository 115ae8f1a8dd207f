"""
Organization service: org CRUD, memberships and the caller's active org.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.organization import Organization
from app.models.profile import Profile
from app.models.user_role import UserRole
from fizz_shared.schemas.common import Role
from fizz_shared.schemas.organizations import OrgCreateRequest, OrgUpdateRequest

log = structlog.get_logger()


async def list_user_orgs(
    user_id: uuid.UUID, session: AsyncSession
) -> list[dict]:
    """List all live orgs a user belongs to, with their role."""
    result = await session.execute(
        select(Organization, UserRole.role)
        .join(UserRole, UserRole.org_id == Organization.id)
        .where(UserRole.user_id == user_id)
        .where(Organization.deleted_at.is_(None))
        .order_by(Organization.name)
    )
    return [
        {"id": org.id, "name": org.name, "slug": org.slug, "role": role}
        for org, role in result.all()
    ]


async def create_org(
    req: OrgCreateRequest,
    creator: Profile,
    session: AsyncSession,
) -> Organization:
    """Create an org, make the creator its owner and switch them to it."""
    existing = await session.execute(
        select(Organization.id).where(Organization.slug == req.slug)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Org slug already taken")

    org = Organization(
        name=req.name,
        slug=req.slug,
        description=req.description,
        owner_user_id=creator.id,
    )
    session.add(org)
    await session.flush()

    session.add(UserRole(user_id=creator.id, org_id=org.id, role=Role.OWNER))
    creator.org_id = org.id
    creator.role = Role.OWNER
    session.add(creator)
    await session.flush()

    log.info("org.created", org_id=str(org.id), slug=org.slug, creator=str(creator.id))
    return org


async def update_org(
    org: Organization,
    req: OrgUpdateRequest,
    session: AsyncSession,
) -> Organization:
    """Update org name and/or description."""
    if req.name is not None:
        org.name = req.name
    if req.description is not None:
        org.description = req.description

    session.add(org)
    await session.flush()

    log.info("org.updated", org_id=str(org.id), slug=org.slug)
    return org


async def delete_org(org: Organization, session: AsyncSession) -> Organization:
    """Soft delete: the org disappears from every listing and lookup."""
    org.deleted_at = datetime.now(timezone.utc)
    session.add(org)
    await session.flush()

    log.info("org.deleted", org_id=str(org.id), slug=org.slug)
    return org


async def switch_active_org(
    profile: Profile, org_slug: str, session: AsyncSession
) -> dict:
    """Point the caller's profile at another org they belong to."""
    result = await session.execute(
        select(Organization, UserRole.role)
        .join(UserRole, UserRole.org_id == Organization.id)
        .where(
            UserRole.user_id == profile.id,
            Organization.slug == org_slug,
            Organization.deleted_at.is_(None),
        )
    )
    row = result.first()
    if not row:
        raise HTTPException(status_code=404, detail="Organization not found")

    org, role = row
    profile.org_id = org.id
    profile.role = role
    session.add(profile)
    await session.flush()

    log.info("org.switched", user_id=str(profile.id), org_id=str(org.id))
    return {"id": org.id, "name": org.name, "slug": org.slug, "role": role}


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

def check_role_change(
    caller_role: Role,
    current_role: Role,
    new_role: Optional[Role],
    owner_count: int,
) -> None:
    """Validate a membership change. ``new_role=None`` means removal.

    Only an owner may grant or revoke ownership, and the last owner
    must stay an owner.
    """
    touches_owner = current_role == Role.OWNER or new_role == Role.OWNER
    if touches_owner and caller_role != Role.OWNER:
        raise HTTPException(
            status_code=403, detail="Only an owner can grant or revoke ownership"
        )
    losing_owner = current_role == Role.OWNER and new_role != Role.OWNER
    if losing_owner and owner_count <= 1:
        raise HTTPException(
            status_code=409, detail="An organization must keep at least one owner"
        )


async def _count_owners(org_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(UserRole)
        .where(UserRole.org_id == org_id, UserRole.role == Role.OWNER)
    )
    return result.scalar_one()


async def _get_membership_or_404(
    org_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> UserRole:
    result = await session.execute(
        select(UserRole).where(UserRole.org_id == org_id, UserRole.user_id == user_id)
    )
    membership = result.scalar_one_or_none()
    if not membership:
        raise HTTPException(status_code=404, detail="Member not found")
    return membership


def _member_dict(profile: Profile, membership: UserRole) -> dict:
    return {
        "user_id": profile.id,
        "email": profile.email,
        "name": profile.name,
        "avatar_url": profile.avatar_url,
        "role": membership.role,
        "joined_at": membership.created_at,
    }


async def list_members(org_id: uuid.UUID, session: AsyncSession) -> list[dict]:
    """List org members, highest role first."""
    result = await session.execute(
        select(Profile, UserRole)
        .join(UserRole, UserRole.user_id == Profile.id)
        .where(UserRole.org_id == org_id)
        .order_by(UserRole.role, Profile.name)
    )
    return [_member_dict(profile, membership) for profile, membership in result.all()]


async def is_member(org_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession) -> bool:
    result = await session.execute(
        select(UserRole.id).where(UserRole.org_id == org_id, UserRole.user_id == user_id)
    )
    return result.scalar_one_or_none() is not None


async def update_member_role(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    new_role: Role,
    caller_role: Role,
    session: AsyncSession,
) -> dict:
    membership = await _get_membership_or_404(org_id, user_id, session)
    owners = await _count_owners(org_id, session)
    check_role_change(caller_role, Role(membership.role), new_role, owners)

    membership.role = new_role
    session.add(membership)

    profile = await session.get(Profile, user_id)
    if profile.org_id == org_id:
        profile.role = new_role
        session.add(profile)
    await session.flush()

    log.info("member.role_changed", org_id=str(org_id), user_id=str(user_id), role=new_role.value)
    return _member_dict(profile, membership)


async def remove_member(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    caller_id: uuid.UUID,
    caller_role: Role,
    session: AsyncSession,
) -> None:
    """Remove a member (admin+) or leave the org (self)."""
    is_self = user_id == caller_id
    if not is_self and caller_role not in (Role.OWNER, Role.ADMIN):
        raise HTTPException(status_code=403, detail="Administrator access required")

    membership = await _get_membership_or_404(org_id, user_id, session)
    owners = await _count_owners(org_id, session)
    # Leaving is always allowed for yourself, short of being the last owner
    effective_caller = Role.OWNER if is_self else caller_role
    check_role_change(effective_caller, Role(membership.role), None, owners)

    await session.delete(membership)

    profile = await session.get(Profile, user_id)
    if profile and profile.org_id == org_id:
        profile.org_id = None
        session.add(profile)
    await session.flush()

    log.info("member.removed", org_id=str(org_id), user_id=str(user_id), by=str(caller_id))
