"""Dashboard endpoints: org stats and the getting-started checklist."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_current_profile, require_member
from app.core.database import get_session
from app.models.profile import Profile
from app.services import dashboard as dashboard_service
from fizz_shared.schemas.dashboard import DashboardStats, OnboardingChecklist

router = APIRouter()
router_global = APIRouter()


@router.get("/stats", response_model=DashboardStats)
async def get_stats(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return await dashboard_service.stats(session, auth.org_id)


@router.get("/onboarding", response_model=OnboardingChecklist)
async def get_org_onboarding(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return await dashboard_service.onboarding(session, auth.org_id)


@router_global.get("/onboarding", response_model=OnboardingChecklist, tags=["Dashboard"])
async def get_onboarding(
    profile: Profile = Depends(get_current_profile),
    session: AsyncSession = Depends(get_session),
):
    """Checklist for the caller's active org (or an empty one before any org exists)."""
    return await dashboard_service.onboarding(session, profile.org_id)
