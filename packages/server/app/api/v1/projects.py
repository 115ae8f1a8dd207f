"""
Project endpoints: CRUD and the project backlog.

- Project keys are uppercased (or derived from the name) and unique per org
- A default five-column board is created with every project
- The key never changes once issues have been numbered with it
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    AuthenticatedUser,
    require_admin,
    require_manager,
    require_member,
)
from app.core.database import get_session
from app.models.project import Project
from app.services import issues as issue_service
from app.services import projects as project_service
from fizz_shared.schemas.issues import IssueRead
from fizz_shared.schemas.projects import ProjectCreate, ProjectRead, ProjectUpdate

router = APIRouter()


async def get_project(
    projectId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
) -> Project:
    """Path dependency: the project, scoped to the caller's org."""
    return await project_service.get_project_or_404(session, projectId, auth.org_id)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=List[ProjectRead])
async def list_projects(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """List the org's projects by name, with issue counts."""
    return await project_service.list_projects(session, auth.org_id)


@router.post("", response_model=ProjectRead, status_code=201)
async def create_project(
    project_in: ProjectCreate,
    auth: AuthenticatedUser = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.create_project(session, project_in, auth.org_id)
    return (await project_service.enrich_projects(session, [project]))[0]


@router.get("/{projectId}", response_model=ProjectRead)
async def get_project_endpoint(
    project: Project = Depends(get_project),
    session: AsyncSession = Depends(get_session),
):
    return (await project_service.enrich_projects(session, [project]))[0]


@router.patch("/{projectId}", response_model=ProjectRead)
async def update_project(
    project_in: ProjectUpdate,
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.update_project(session, project, project_in)
    return (await project_service.enrich_projects(session, [project]))[0]


@router.delete("/{projectId}", status_code=204)
async def delete_project(
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Delete a project with its sprints, issues, boards and deployments (owner/admin)."""
    await project_service.delete_project(session, project)


@router.get("/{projectId}/backlog", response_model=List[IssueRead])
async def get_backlog(
    q: Optional[str] = None,
    project: Project = Depends(get_project),
    session: AsyncSession = Depends(get_session),
):
    """Issues still in the backlog, newest first, optionally matching ``q``."""
    issues = await issue_service.backlog(session, project, q)
    return [issue_service.to_read(i) for i in issues]
