"""
Authentication and Authorization for Fizz.

Supports:
- Email/Password login with bcrypt hashes, OIDC (GitHub) placeholder
- JWT session management with Redis revocation list
- Role-based authorization dependencies (owner > admin > manager > contributor > viewer)
- Per-request user context for RLS
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import get_session, set_rls_user
from app.core.middleware import SESSION_COOKIE
from app.core.redis import get_redis
from app.models.organization import Organization
from app.models.profile import Profile
from app.models.user_role import UserRole
from fizz_shared.schemas.common import Role, role_at_least

log = structlog.get_logger()
settings = get_settings()

bearer_header = APIKeyHeader(name="Authorization", auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    active_org: Optional[uuid.UUID] = None,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "active_org": str(active_org) if active_org else None,
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def session_ttl_seconds(payload: dict) -> int:
    """Seconds until the token would expire on its own (at least 1)."""
    exp = payload.get("exp")
    if not exp:
        return settings.jwt_expire_minutes * 60
    remaining = int(exp - datetime.now(timezone.utc).timestamp())
    return max(remaining, 1)


# ---------------------------------------------------------------------------
# JWT Revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_jwt(jti: str, ttl_seconds: int = 3600) -> None:
    """Add a JWT ID to the revocation list in Redis."""
    redis = await get_redis()
    await redis.setex(f"jwt:revoked:{jti}", ttl_seconds, "1")


async def is_jwt_revoked(jti: str) -> bool:
    """Check if a JWT ID has been revoked."""
    redis = await get_redis()
    return await redis.exists(f"jwt:revoked:{jti}") > 0


# ---------------------------------------------------------------------------
# CSRF Token
# ---------------------------------------------------------------------------

def generate_csrf_token() -> str:
    """Generate a random CSRF token."""
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

class AuthenticatedUser:
    """Container for an authenticated profile + their org context."""

    def __init__(self, profile: Profile, org: Organization, membership: UserRole):
        self.profile = profile
        self.org = org
        self.membership = membership
        self.user_id = profile.id
        self.org_id = org.id
        self.role = Role(membership.role)

    def has_role(self, minimum: Role) -> bool:
        return role_at_least(self.role, minimum)


def extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    """Bearer header wins over the session cookie."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip()
    return request.cookies.get(SESSION_COOKIE)


async def _verify_session_token(token: str) -> dict:
    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        log.warning("auth.session_invalid")
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        log.warning("auth.session_revoked", jti=jti)
        raise HTTPException(status_code=401, detail="Session has been revoked")
    return payload


async def get_session_payload(
    request: Request,
    authorization: Optional[str] = Depends(bearer_header),
) -> dict:
    """Verified JWT claims of the caller."""
    token = extract_token(request, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")
    return await _verify_session_token(token)


async def get_current_profile(
    payload: dict = Depends(get_session_payload),
    session: AsyncSession = Depends(get_session),
) -> Profile:
    """Authenticated profile without org context (orgs list, invites, /auth/me)."""
    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    result = await session.execute(select(Profile).where(Profile.id == user_id))
    profile = result.scalar_one_or_none()
    if not profile:
        raise HTTPException(status_code=401, detail="User not found")

    await set_rls_user(session, profile.id)
    return profile


async def _resolve_org(org_slug: str, session: AsyncSession) -> Organization:
    """Resolve a live org by slug, raise 404 if not found."""
    result = await session.execute(
        select(Organization).where(
            Organization.slug == org_slug,
            Organization.deleted_at.is_(None),
        )
    )
    org = result.scalar_one_or_none()
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return org


async def get_authenticated_user(
    request: Request,
    orgSlug: str,
    profile: Profile = Depends(get_current_profile),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    """Main org-scoped dependency: the caller must hold a role in the org."""
    org = await _resolve_org(orgSlug, session)

    result = await session.execute(
        select(UserRole).where(UserRole.user_id == profile.id, UserRole.org_id == org.id)
    )
    membership = result.scalar_one_or_none()
    if not membership:
        # Non-members cannot tell a private org from a missing one
        raise HTTPException(status_code=404, detail="Organization not found")

    auth_user = AuthenticatedUser(profile=profile, org=org, membership=membership)
    request.state.auth = auth_user
    return auth_user


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

def require_role(minimum: Role, detail: str):
    """Build a dependency that admits callers ranked at or above ``minimum``."""

    async def dependency(
        auth: AuthenticatedUser = Depends(get_authenticated_user),
    ) -> AuthenticatedUser:
        if not auth.has_role(minimum):
            log.warning(
                "auth.forbidden",
                user_id=str(auth.user_id),
                org_id=str(auth.org_id),
                role=auth.role.value,
                required=minimum.value,
            )
            raise HTTPException(status_code=403, detail=detail)
        return auth

    return dependency


async def require_member(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Any org member can access this endpoint."""
    return auth


require_contributor = require_role(Role.CONTRIBUTOR, "Contributor access required")
require_manager = require_role(Role.MANAGER, "Manager access required")
require_admin = require_role(Role.ADMIN, "Administrator access required")
require_owner = require_role(Role.OWNER, "Owner access required")
