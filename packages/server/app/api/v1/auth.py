"""
Authentication endpoints.

- Email/Password registration & login
- OIDC login placeholder (GitHub)
- JWT session management (refresh, logout)
- The caller's profile and memberships
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlencode

import jwt
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import (
    bearer_header,
    create_jwt,
    extract_token,
    generate_csrf_token,
    get_current_profile,
    hash_password,
    is_jwt_revoked,
    revoke_jwt,
    decode_jwt,
    session_ttl_seconds,
    verify_password,
)
from app.core.config import get_settings
from app.core.database import get_session
from app.core.middleware import CSRF_COOKIE, SESSION_COOKIE
from app.models.organization import Organization
from app.models.profile import Profile
from app.models.user_role import UserRole
from fizz_shared.schemas.users import MembershipRead, MeResponse, ProfileResponse, ProfileUpdateRequest

log = structlog.get_logger()
settings = get_settings()
router = APIRouter()

MIN_PASSWORD_LENGTH = 8
# bcrypt only hashes the first 72 bytes and rejects longer input
MAX_PASSWORD_BYTES = 72

# Cookie config
COOKIE_KWARGS = {
    "httponly": True,
    "secure": not settings.debug,  # allow non-HTTPS in dev
    "samesite": "lax",
    "path": "/",
    "max_age": settings.jwt_expire_minutes * 60,
}


def _check_password_size(password: str) -> None:
    if len(password.encode()) > MAX_PASSWORD_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at most {MAX_PASSWORD_BYTES} bytes",
        )


def _set_session_cookies(response: Response, token: str, csrf: str) -> None:
    """Set the session JWT and CSRF cookies on a response."""
    response.set_cookie(key=SESSION_COOKIE, value=token, **COOKIE_KWARGS)
    response.set_cookie(
        key=CSRF_COOKIE,
        value=csrf,
        httponly=False,  # JS must read this
        secure=not settings.debug,
        samesite="lax",
        path="/",
        max_age=settings.jwt_expire_minutes * 60,
    )


def _start_session(response: Response, profile: Profile) -> str:
    token, _jti = create_jwt(user_id=profile.id, active_org=profile.org_id)
    _set_session_cookies(response, token, generate_csrf_token())
    return token


# ---------------------------------------------------------------------------
# Email/Password Registration
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    name: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    user_id: str
    email: str
    access_token: str
    message: str


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Register a new account with email/password. The caller starts with no org."""
    email = body.email.lower()
    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )
    _check_password_size(body.password)

    result = await session.execute(select(Profile.id).where(Profile.email == email))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Email already registered")

    profile = Profile(
        id=uuid.uuid4(),
        email=email,
        name=(body.name or "").strip() or email.split("@", 1)[0],
        password_hash=hash_password(body.password),
        last_active_at=datetime.now(timezone.utc),
    )
    session.add(profile)
    await session.flush()

    token = _start_session(response, profile)
    log.info("user.registered", user_id=str(profile.id), email=email)
    return AuthResponse(
        user_id=str(profile.id), email=email, access_token=token, message="Registration successful"
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate with email/password and receive a JWT session."""
    _check_password_size(body.password)
    email = body.email.lower()
    result = await session.execute(select(Profile).where(Profile.email == email))
    profile = result.scalar_one_or_none()

    if not profile or not profile.password_hash:
        log.warning("auth.login_failure", email=email, reason="unknown_user")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not verify_password(body.password, profile.password_hash):
        log.warning("auth.login_failure", email=email, reason="bad_password")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    profile.last_active_at = datetime.now(timezone.utc)
    session.add(profile)

    token = _start_session(response, profile)
    log.info("auth.login_success", user_id=str(profile.id), email=email)
    return AuthResponse(
        user_id=str(profile.id), email=email, access_token=token, message="Login successful"
    )


# ---------------------------------------------------------------------------
# OIDC Login (Placeholder)
# ---------------------------------------------------------------------------

@router.get("/login/oidc")
async def oidc_login(provider: str):
    """
    Initiate OIDC login flow.

    Placeholder: returns the provider's authorization URL; the code exchange is not wired.
    """
    if provider != "github":
        raise HTTPException(status_code=400, detail="Unsupported OIDC provider")
    if not settings.github_client_id:
        raise HTTPException(status_code=503, detail="GitHub login is not configured")

    query = urlencode({"client_id": settings.github_client_id, "scope": "read:user user:email"})
    auth_url = f"https://github.com/login/oauth/authorize?{query}"
    return {"provider": provider, "authorization_url": auth_url, "status": "placeholder"}


# ---------------------------------------------------------------------------
# Session Management
# ---------------------------------------------------------------------------

@router.post("/refresh")
async def refresh_session(
    request: Request,
    response: Response,
    authorization: Optional[str] = Depends(bearer_header),
):
    """Refresh the current JWT session by issuing a new token."""
    token = extract_token(request, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="No active session")

    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        raise HTTPException(status_code=401, detail="Session has been revoked")

    # Issue new JWT, revoke old one
    active_org = payload.get("active_org")
    new_token, _new_jti = create_jwt(
        user_id=uuid.UUID(payload["sub"]),
        active_org=uuid.UUID(active_org) if active_org else None,
    )
    if jti:
        await revoke_jwt(jti, session_ttl_seconds(payload))

    _set_session_cookies(response, new_token, generate_csrf_token())
    return {"message": "Session refreshed", "access_token": new_token}


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    authorization: Optional[str] = Depends(bearer_header),
):
    """Invalidate the current session."""
    token = extract_token(request, authorization)
    if token:
        try:
            payload = decode_jwt(token)
        except jwt.PyJWTError:
            payload = {}  # Token already invalid, just clear cookies
        jti = payload.get("jti")
        if jti:
            await revoke_jwt(jti, session_ttl_seconds(payload))

    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(CSRF_COOKIE, path="/")
    return {"message": "Logged out"}


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------

async def _memberships(session: AsyncSession, profile: Profile) -> list[MembershipRead]:
    result = await session.execute(
        select(Organization, UserRole.role)
        .join(UserRole, UserRole.org_id == Organization.id)
        .where(UserRole.user_id == profile.id, Organization.deleted_at.is_(None))
        .order_by(Organization.name)
    )
    return [
        MembershipRead(org_id=org.id, org_slug=org.slug, org_name=org.name, role=role)
        for org, role in result.all()
    ]


@router.get("/me", response_model=MeResponse)
async def me(
    profile: Profile = Depends(get_current_profile),
    session: AsyncSession = Depends(get_session),
):
    """The caller's profile plus every org they belong to."""
    return MeResponse(
        profile=ProfileResponse.model_validate(profile),
        memberships=await _memberships(session, profile),
    )


@router.patch("/me", response_model=ProfileResponse)
async def update_me(
    body: ProfileUpdateRequest,
    profile: Profile = Depends(get_current_profile),
    session: AsyncSession = Depends(get_session),
):
    """Update the caller's own name, avatar or GitHub username."""
    for field, value in body.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(profile, field, value)
    session.add(profile)
    await session.flush()
    return ProfileResponse.model_validate(profile)
