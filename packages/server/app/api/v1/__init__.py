"""
API v1 Router

All org-scoped endpoints are prefixed with /orgs/{orgSlug}.
"""

from fastapi import APIRouter
from . import boards, dashboard, deployments, invites, issues, projects, sprints, users
from .organizations import router_global as orgs_global_router
from .organizations import router_scoped as orgs_scoped_router

router = APIRouter()

PROJECT = "/orgs/{orgSlug}/projects/{projectId}"

# Organization routes (non-org-scoped: list, create, switch active)
router.include_router(orgs_global_router)

# Organization routes (org-scoped: get, update, delete)
router.include_router(orgs_scoped_router, prefix="/orgs/{orgSlug}", tags=["Organizations"])

# Routes reached without an org in the path
router.include_router(invites.router_global)
router.include_router(dashboard.router_global)

# Org-scoped resource routers
router.include_router(users.router, prefix="/orgs/{orgSlug}/members", tags=["Members"])
router.include_router(invites.router, prefix="/orgs/{orgSlug}/invites", tags=["Invites"])
router.include_router(dashboard.router, prefix="/orgs/{orgSlug}/dashboard", tags=["Dashboard"])
router.include_router(issues.router_org, prefix="/orgs/{orgSlug}/issues", tags=["Issues"])
router.include_router(projects.router, prefix="/orgs/{orgSlug}/projects", tags=["Projects"])

# Project-scoped resource routers
router.include_router(sprints.router, prefix=f"{PROJECT}/sprints", tags=["Sprints"])
router.include_router(issues.router, prefix=f"{PROJECT}/issues", tags=["Issues"])
router.include_router(boards.router, prefix=f"{PROJECT}/boards", tags=["Boards"])
router.include_router(deployments.router, prefix=f"{PROJECT}/deployments", tags=["Deployments"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/orgs",
            "/orgs/{orgSlug}/members",
            "/orgs/{orgSlug}/invites",
            "/orgs/{orgSlug}/issues",
            "/orgs/{orgSlug}/projects",
            "/orgs/{orgSlug}/projects/{projectId}/sprints",
            "/orgs/{orgSlug}/projects/{projectId}/issues",
            "/orgs/{orgSlug}/projects/{projectId}/boards",
            "/orgs/{orgSlug}/projects/{projectId}/deployments",
            "/orgs/{orgSlug}/dashboard/stats",
            "/invites/{token}",
            "/onboarding",
        ],
    }
