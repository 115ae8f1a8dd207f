"""
Sprint endpoints.

Lifecycle: planned → active → completed, with cancelled reachable from
planned or active. Closing a sprint returns its unfinished issues to the backlog.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.projects import get_project
from app.core.auth import AuthenticatedUser, require_contributor, require_manager, require_member
from app.core.database import get_session
from app.models.project import Project
from app.models.sprint import Sprint
from app.services import sprints as sprint_service
from fizz_shared.schemas.common import SprintStatus
from fizz_shared.schemas.sprints import SprintCreate, SprintRead, SprintTransition, SprintUpdate

router = APIRouter()


async def get_sprint(
    sprintId: uuid.UUID,
    project: Project = Depends(get_project),
    session: AsyncSession = Depends(get_session),
) -> Sprint:
    return await sprint_service.get_sprint_or_404(session, sprintId, project)


@router.get("", response_model=List[SprintRead])
async def list_sprints(
    status: Optional[SprintStatus] = None,
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    sprints = await sprint_service.list_sprints(session, project, status)
    return await sprint_service.enrich_sprints(session, sprints)


@router.post("", response_model=SprintRead, status_code=201)
async def create_sprint(
    sprint_in: SprintCreate,
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(require_contributor),
    session: AsyncSession = Depends(get_session),
):
    """Plan a sprint. Sprints without dates default to a two-week window from today."""
    sprint = await sprint_service.create_sprint(session, project, sprint_in, auth.user_id)
    return (await sprint_service.enrich_sprints(session, [sprint]))[0]


@router.get("/{sprintId}", response_model=SprintRead)
async def get_sprint_endpoint(
    sprint: Sprint = Depends(get_sprint),
    session: AsyncSession = Depends(get_session),
):
    return (await sprint_service.enrich_sprints(session, [sprint]))[0]


@router.patch("/{sprintId}", response_model=SprintRead)
async def update_sprint(
    sprint_in: SprintUpdate,
    sprint: Sprint = Depends(get_sprint),
    auth: AuthenticatedUser = Depends(require_contributor),
    session: AsyncSession = Depends(get_session),
):
    sprint = await sprint_service.update_sprint(session, sprint, sprint_in)
    return (await sprint_service.enrich_sprints(session, [sprint]))[0]


@router.post("/{sprintId}/transition", response_model=SprintRead)
async def transition_sprint(
    body: SprintTransition,
    sprint: Sprint = Depends(get_sprint),
    auth: AuthenticatedUser = Depends(require_contributor),
    session: AsyncSession = Depends(get_session),
):
    sprint = await sprint_service.transition_sprint(session, sprint, body.to_status)
    return (await sprint_service.enrich_sprints(session, [sprint]))[0]


@router.delete("/{sprintId}", status_code=204)
async def delete_sprint(
    sprint: Sprint = Depends(get_sprint),
    auth: AuthenticatedUser = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    await sprint_service.delete_sprint(session, sprint)
