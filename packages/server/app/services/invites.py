"""
Invitation service: issue, preview and redeem single-use org invites.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.models.invite import Invite
from app.models.organization import Organization
from app.models.profile import Profile
from app.models.user_role import UserRole
from fizz_shared.schemas.invites import InviteCreate, InviteCreated, InviteRead, InviteState

log = structlog.get_logger()


def invite_state(invite: Invite, now: Optional[datetime] = None) -> InviteState:
    if invite.accepted_at is not None:
        return InviteState.ACCEPTED
    if invite.expires_at <= (now or datetime.now(timezone.utc)):
        return InviteState.EXPIRED
    return InviteState.PENDING


def accept_url(token: str) -> str:
    return f"{get_settings().public_app_url.rstrip('/')}/invite/{token}"


def to_read(invite: Invite, now: Optional[datetime] = None) -> InviteRead:
    return InviteRead(
        id=invite.id,
        org_id=invite.org_id,
        email=invite.email,
        role=invite.role,
        state=invite_state(invite, now),
        expires_at=invite.expires_at,
        created_by=invite.created_by,
        created_at=invite.created_at,
        accepted_at=invite.accepted_at,
        accepted_by=invite.accepted_by,
    )


def check_acceptance(
    invite: Optional[Invite],
    email: str,
    already_member: bool,
    now: Optional[datetime] = None,
) -> Invite:
    """Raise the HTTP error that blocks redeeming ``invite``, if any."""
    if invite is None or invite.accepted_at is not None:
        raise HTTPException(
            status_code=404, detail="Invitation not found or already accepted"
        )
    if invite.expires_at <= (now or datetime.now(timezone.utc)):
        raise HTTPException(status_code=410, detail="This invitation has expired")
    if invite.email.lower() != email.lower():
        raise HTTPException(
            status_code=403, detail="This invitation was sent to a different email address"
        )
    if already_member:
        raise HTTPException(
            status_code=409, detail="You are already a member of this organization"
        )
    return invite


async def create_invites(
    session: AsyncSession,
    org_id: uuid.UUID,
    invite_in: InviteCreate,
    created_by: uuid.UUID,
) -> list[InviteCreated]:
    expires_at = datetime.now(timezone.utc) + timedelta(days=get_settings().invite_expiry_days)
    invites = [
        Invite(
            org_id=org_id,
            email=email,
            role=invite_in.role,
            token=str(uuid.uuid4()),
            expires_at=expires_at,
            created_by=created_by,
        )
        for email in invite_in.emails
    ]
    session.add_all(invites)
    await session.flush()

    log.info("invite.created", org_id=str(org_id), count=len(invites), role=invite_in.role.value)
    return [
        InviteCreated(
            **to_read(i).model_dump(), token=i.token, accept_url=accept_url(i.token)
        )
        for i in invites
    ]


async def list_invites(
    session: AsyncSession, org_id: uuid.UUID, pending_only: bool = False
) -> list[InviteRead]:
    stmt = select(Invite).where(Invite.org_id == org_id)
    if pending_only:
        stmt = stmt.where(
            Invite.accepted_at.is_(None),
            Invite.expires_at > datetime.now(timezone.utc),
        )
    result = await session.execute(stmt.order_by(Invite.created_at.desc()))
    return [to_read(i) for i in result.scalars().all()]


async def revoke_invite(
    session: AsyncSession, org_id: uuid.UUID, invite_id: uuid.UUID
) -> None:
    invite = await session.get(Invite, invite_id)
    if not invite or invite.org_id != org_id:
        raise HTTPException(status_code=404, detail="Invitation not found")
    if invite.accepted_at is not None:
        raise HTTPException(status_code=409, detail="Invitation was already accepted")
    await session.delete(invite)
    await session.flush()
    log.info("invite.revoked", invite_id=str(invite_id), org_id=str(org_id))


async def _get_by_token(session: AsyncSession, token: str) -> Optional[tuple[Invite, Organization]]:
    result = await session.execute(
        select(Invite, Organization)
        .join(Organization, Organization.id == Invite.org_id)
        .where(Invite.token == token, Organization.deleted_at.is_(None))
    )
    return result.first()


async def preview_invite(session: AsyncSession, token: str) -> dict:
    row = await _get_by_token(session, token)
    if not row:
        raise HTTPException(status_code=404, detail="Invitation not found")
    invite, org = row
    return {
        "org_name": org.name,
        "org_slug": org.slug,
        "email": invite.email,
        "role": invite.role,
        "state": invite_state(invite),
        "expires_at": invite.expires_at,
    }


async def accept_invite(
    session: AsyncSession, token: str, profile: Profile
) -> tuple[Invite, Organization]:
    """Redeem an invite for the caller. Single use."""
    # Lock the row so two concurrent accepts cannot both succeed
    result = await session.execute(
        select(Invite).where(Invite.token == token).with_for_update()
    )
    invite = result.scalar_one_or_none()

    already_member = False
    if invite is not None:
        member = await session.execute(
            select(UserRole.id).where(
                UserRole.org_id == invite.org_id, UserRole.user_id == profile.id
            )
        )
        already_member = member.scalar_one_or_none() is not None

    check_acceptance(invite, profile.email, already_member)

    org = await session.get(Organization, invite.org_id)
    if not org or org.deleted_at is not None:
        raise HTTPException(
            status_code=404, detail="Invitation not found or already accepted"
        )

    session.add(UserRole(user_id=profile.id, org_id=org.id, role=invite.role))
    profile.org_id = org.id
    profile.role = invite.role
    session.add(profile)

    invite.accepted_at = datetime.now(timezone.utc)
    invite.accepted_by = profile.id
    session.add(invite)
    await session.flush()

    log.info("invite.accepted", invite_id=str(invite.id), org_id=str(org.id), user_id=str(profile.id))
    return invite, org


async def purge_expired_invites(session: AsyncSession, retention_days: int) -> int:
    """Delete unaccepted invites that expired more than ``retention_days`` ago."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    result = await session.execute(
        delete(Invite).where(Invite.accepted_at.is_(None), Invite.expires_at < cutoff)
    )
    return result.rowcount or 0
