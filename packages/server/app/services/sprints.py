"""
Sprint service: planning windows and the planned → active → completed lifecycle.

Closing a sprint (completed or cancelled) sends its unfinished issues back to
the backlog so nothing stays attached to a sprint that is over.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.models.issue import Issue
from app.models.project import Project
from app.models.sprint import Sprint
from fizz_shared.schemas.common import IssueStatus, SprintStatus, SprintType
from fizz_shared.schemas.sprints import (
    SprintCreate,
    SprintRead,
    SprintUpdate,
    default_sprint_window,
    validate_sprint_transition,
)

# Partial unique index: at most one active sprint per project
ONE_ACTIVE_SPRINT_INDEX = "sprints_one_active_per_project"
ACTIVE_CONFLICT = "Another sprint is already active in this project"

log = structlog.get_logger()


async def get_sprint_or_404(
    session: AsyncSession, sprint_id: uuid.UUID, project: Project
) -> Sprint:
    sprint = await session.get(Sprint, sprint_id)
    if not sprint or sprint.project_id != project.id:
        raise HTTPException(status_code=404, detail="Sprint not found")
    return sprint


async def enrich_sprints(session: AsyncSession, sprints: list[Sprint]) -> list[SprintRead]:
    if not sprints:
        return []
    result = await session.execute(
        select(Issue.sprint_id, func.count().label("cnt"))
        .where(Issue.sprint_id.in_([s.id for s in sprints]))
        .group_by(Issue.sprint_id)
    )
    counts = {row.sprint_id: row.cnt for row in result}
    return [
        SprintRead.model_validate(s).model_copy(update={"issue_count": counts.get(s.id, 0)})
        for s in sprints
    ]


async def list_sprints(
    session: AsyncSession, project: Project, status: Optional[SprintStatus] = None
) -> list[Sprint]:
    stmt = select(Sprint).where(Sprint.project_id == project.id)
    if status:
        stmt = stmt.where(Sprint.status == status)
    stmt = stmt.order_by(Sprint.start_date.desc().nulls_last(), Sprint.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def create_sprint(
    session: AsyncSession,
    project: Project,
    sprint_in: SprintCreate,
    created_by: uuid.UUID,
    today: Optional[date] = None,
) -> Sprint:
    start, end = sprint_in.start_date, sprint_in.end_date
    if sprint_in.type == SprintType.SPRINT and start is None and end is None:
        start, end = default_sprint_window(
            today or date.today(), get_settings().sprint_length_days
        )

    sprint = Sprint(
        project_id=project.id,
        name=sprint_in.name,
        type=sprint_in.type.value,
        goal=sprint_in.goal,
        start_date=start,
        end_date=end,
        status=SprintStatus.PLANNED,
        created_by=created_by,
    )
    session.add(sprint)
    await session.flush()

    log.info("sprint.created", sprint_id=str(sprint.id), project_id=str(project.id))
    return sprint


async def update_sprint(
    session: AsyncSession, sprint: Sprint, sprint_in: SprintUpdate
) -> Sprint:
    for field, value in sprint_in.model_dump(exclude_unset=True).items():
        setattr(sprint, field, value)
    if sprint.start_date and sprint.end_date and sprint.end_date < sprint.start_date:
        raise HTTPException(status_code=422, detail="end_date must not be before start_date")

    session.add(sprint)
    await session.flush()
    return sprint


async def transition_sprint(
    session: AsyncSession, sprint: Sprint, target: SprintStatus
) -> Sprint:
    """Move a sprint through its lifecycle. One active sprint per project."""
    current = SprintStatus(sprint.status)
    ok, message = validate_sprint_transition(current, target)
    if not ok:
        raise HTTPException(status_code=400, detail=message)

    if target == SprintStatus.ACTIVE:
        result = await session.execute(
            select(Sprint.id).where(
                Sprint.project_id == sprint.project_id,
                Sprint.status == SprintStatus.ACTIVE,
                Sprint.id != sprint.id,
            )
        )
        if result.first():
            raise HTTPException(status_code=409, detail=ACTIVE_CONFLICT)

        # A concurrent start can still win between the check and this write
        try:
            async with session.begin_nested():
                sprint.status = target
                session.add(sprint)
                await session.flush()
        except IntegrityError as exc:
            sprint.status = current
            if ONE_ACTIVE_SPRINT_INDEX not in str(exc.orig):
                raise
            log.warning("sprint.active_conflict", sprint_id=str(sprint.id))
            raise HTTPException(status_code=409, detail=ACTIVE_CONFLICT)
    else:
        sprint.status = target
        session.add(sprint)

    moved = 0
    if target in (SprintStatus.COMPLETED, SprintStatus.CANCELLED):
        result = await session.execute(
            update(Issue)
            .where(Issue.sprint_id == sprint.id, Issue.status != IssueStatus.DONE)
            .values(sprint_id=None, status=IssueStatus.BACKLOG)
            .execution_options(synchronize_session=False)
        )
        moved = result.rowcount
    await session.flush()

    log.info(
        "sprint.transitioned",
        sprint_id=str(sprint.id),
        from_status=current.value,
        to_status=target.value,
        issues_returned=moved,
    )
    return sprint


async def delete_sprint(session: AsyncSession, sprint: Sprint) -> None:
    # issues.sprint_id is nulled by the foreign key
    await session.delete(sprint)
    await session.flush()
    log.info("sprint.deleted", sprint_id=str(sprint.id))
