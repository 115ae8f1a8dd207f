"""
Project service: CRUD plus the default board created alongside each project.
"""

from __future__ import annotations

import uuid
from typing import Sequence

import structlog
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.board import Board
from app.models.issue import Issue
from app.models.project import Project
from fizz_shared.schemas.boards import DEFAULT_BOARD_COLUMNS, BoardFilter
from fizz_shared.schemas.common import IssueStatus
from fizz_shared.schemas.projects import ProjectCreate, ProjectRead, ProjectUpdate

log = structlog.get_logger()


async def get_project_or_404(
    session: AsyncSession, project_id: uuid.UUID, org_id: uuid.UUID
) -> Project:
    project = await session.get(Project, project_id)
    if not project or project.org_id != org_id:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


async def enrich_projects(
    session: AsyncSession, projects: Sequence[Project]
) -> list[ProjectRead]:
    """Attach total and open issue counts."""
    if not projects:
        return []

    project_ids = [p.id for p in projects]
    stmt = (
        select(
            Issue.project_id,
            func.count().label("total"),
            func.count().filter(Issue.status != IssueStatus.DONE).label("open"),
        )
        .where(Issue.project_id.in_(project_ids))
        .group_by(Issue.project_id)
    )
    result = await session.execute(stmt)
    counts = {row.project_id: (row.total, row.open) for row in result}

    return [
        ProjectRead(
            id=p.id,
            org_id=p.org_id,
            name=p.name,
            key=p.key,
            description=p.description,
            issue_count=counts.get(p.id, (0, 0))[0],
            open_issue_count=counts.get(p.id, (0, 0))[1],
            created_at=p.created_at,
            updated_at=p.updated_at,
        )
        for p in projects
    ]


async def list_projects(session: AsyncSession, org_id: uuid.UUID) -> list[ProjectRead]:
    result = await session.execute(
        select(Project).where(Project.org_id == org_id).order_by(Project.name)
    )
    return await enrich_projects(session, result.scalars().all())


async def create_project(
    session: AsyncSession, project_in: ProjectCreate, org_id: uuid.UUID
) -> Project:
    """Create a project and its default board. Duplicate key in the org is 409."""
    existing = await session.execute(
        select(Project.id).where(Project.org_id == org_id, Project.key == project_in.key)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=409, detail=f"Project key {project_in.key} is already in use"
        )

    project = Project(
        org_id=org_id,
        name=project_in.name,
        key=project_in.key,
        description=project_in.description,
    )
    session.add(project)
    await session.flush()

    session.add(
        Board(
            project_id=project.id,
            name=f"{project.name} board",
            columns=[c.model_dump(mode="json") for c in DEFAULT_BOARD_COLUMNS],
            filter_query=BoardFilter().model_dump(mode="json"),
        )
    )
    await session.flush()

    log.info("project.created", project_id=str(project.id), org_id=str(org_id), key=project.key)
    return project


async def update_project(
    session: AsyncSession, project: Project, project_in: ProjectUpdate
) -> Project:
    """Rename or redescribe a project. The key never changes."""
    for field, value in project_in.model_dump(exclude_unset=True).items():
        setattr(project, field, value)
    session.add(project)
    await session.flush()

    log.info("project.updated", project_id=str(project.id))
    return project


async def delete_project(session: AsyncSession, project: Project) -> None:
    await session.delete(project)
    await session.flush()
    log.info("project.deleted", project_id=str(project.id), key=project.key)
