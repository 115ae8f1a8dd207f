"""
Issue service layer: business logic for issues, subtasks and the people on them.

Handles:
- Issue creation with key allocation and parent/sprint/assignee checks
- Filtered listing (board, backlog, search)
- Edit permissions mirroring the row policies (reporter, assignee, manager+)
- closed_at bookkeeping on status changes
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

import structlog
from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.models.issue import Issue
from app.models.project import Project
from app.models.sprint import Sprint
from app.models.user_role import UserRole
from app.services.issue_keys import insert_with_key
from fizz_shared.schemas.common import IssueStatus, IssueType, Role, role_at_least
from fizz_shared.schemas.issues import IssueCreate, IssueRead, IssueUpdate

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_read(issue: Issue) -> IssueRead:
    return IssueRead(
        id=issue.id,
        project_id=issue.project_id,
        sprint_id=issue.sprint_id,
        parent_issue_id=issue.parent_issue_id,
        issue_key=issue.issue_key,
        type=issue.type,
        title=issue.title,
        description=issue.description,
        priority=issue.priority,
        status=issue.status,
        estimate_points=issue.estimate_points,
        estimate_hours=issue.estimate_hours,
        reporter_id=issue.reporter_id,
        assignee_ids=issue.assignee_ids or [],
        watcher_ids=issue.watcher_ids or [],
        labels=issue.labels or [],
        metadata=issue.meta or {},
        created_at=issue.created_at,
        updated_at=issue.updated_at,
        closed_at=issue.closed_at,
    )


def can_edit_issue(role: Role, user_id: uuid.UUID, issue: Issue) -> bool:
    """Reporter, any assignee, or manager and above."""
    if role_at_least(role, Role.MANAGER):
        return True
    return issue.reporter_id == user_id or user_id in (issue.assignee_ids or [])


def can_delete_issue(role: Role, user_id: uuid.UUID, issue: Issue) -> bool:
    return role_at_least(role, Role.MANAGER) or issue.reporter_id == user_id


def apply_status(issue: Issue, status: IssueStatus, now: Optional[datetime] = None) -> None:
    """Set status, stamping closed_at on entering done and clearing it on leaving."""
    previous = IssueStatus(issue.status) if issue.status else None
    issue.status = status
    if status == IssueStatus.DONE and previous != IssueStatus.DONE:
        issue.closed_at = now or datetime.now(timezone.utc)
    elif status != IssueStatus.DONE:
        issue.closed_at = None


async def get_issue_or_404(
    session: AsyncSession, issue_id: uuid.UUID, project: Project
) -> Issue:
    issue = await session.get(Issue, issue_id)
    if not issue or issue.project_id != project.id:
        raise HTTPException(status_code=404, detail="Issue not found")
    return issue


async def get_issue_by_key(
    session: AsyncSession, project: Project, issue_key: str
) -> Issue:
    result = await session.execute(
        select(Issue).where(
            Issue.project_id == project.id, Issue.issue_key == issue_key.upper()
        )
    )
    issue = result.scalar_one_or_none()
    if not issue:
        raise HTTPException(status_code=404, detail="Issue not found")
    return issue


async def _check_sprint(
    session: AsyncSession, sprint_id: Optional[uuid.UUID], project: Project
) -> None:
    if sprint_id is None:
        return
    sprint = await session.get(Sprint, sprint_id)
    if not sprint or sprint.project_id != project.id:
        raise HTTPException(
            status_code=400, detail="Sprint must belong to the same project"
        )


async def _check_assignees(
    session: AsyncSession, assignee_ids: Iterable[uuid.UUID], org_id: uuid.UUID
) -> list[uuid.UUID]:
    """De-duplicate assignees and make sure all are org members."""
    unique = list(dict.fromkeys(assignee_ids))
    if not unique:
        return []
    result = await session.execute(
        select(UserRole.user_id).where(
            UserRole.org_id == org_id, UserRole.user_id.in_(unique)
        )
    )
    members = {row[0] for row in result.all()}
    missing = [str(uid) for uid in unique if uid not in members]
    if missing:
        raise HTTPException(
            status_code=400,
            detail=f"Assignees must be members of the organization: {', '.join(missing)}",
        )
    return unique


async def _check_parent(
    session: AsyncSession,
    parent_id: Optional[uuid.UUID],
    issue_type: IssueType,
    project: Project,
) -> None:
    if parent_id is None:
        if issue_type == IssueType.SUBTASK:
            raise HTTPException(status_code=400, detail="A subtask needs a parent issue")
        return
    parent = await session.get(Issue, parent_id)
    if not parent or parent.project_id != project.id:
        raise HTTPException(
            status_code=400, detail="Parent issue must belong to the same project"
        )
    if parent.type == IssueType.SUBTASK:
        raise HTTPException(status_code=400, detail="Subtasks cannot have subtasks")


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_issue(
    session: AsyncSession,
    project: Project,
    issue_in: IssueCreate,
    auth: AuthenticatedUser,
) -> Issue:
    await _check_parent(session, issue_in.parent_issue_id, issue_in.type, project)
    await _check_sprint(session, issue_in.sprint_id, project)
    assignees = await _check_assignees(session, issue_in.assignee_ids, auth.org_id)

    issue = Issue(
        project_id=project.id,
        sprint_id=issue_in.sprint_id,
        parent_issue_id=issue_in.parent_issue_id,
        issue_key="",
        type=issue_in.type,
        title=issue_in.title,
        description=issue_in.description,
        priority=issue_in.priority,
        status=IssueStatus.BACKLOG,
        estimate_points=issue_in.estimate_points,
        estimate_hours=issue_in.estimate_hours,
        reporter_id=auth.user_id,
        assignee_ids=assignees,
        watcher_ids=[auth.user_id],
        labels=issue_in.labels,
        meta=issue_in.metadata,
    )
    await insert_with_key(session, issue)

    log.info(
        "issue.created",
        issue_id=str(issue.id),
        issue_key=issue.issue_key,
        project_id=str(project.id),
        reporter=str(auth.user_id),
    )
    return issue


async def list_issues(
    session: AsyncSession,
    org_id: uuid.UUID,
    *,
    project_id: Optional[uuid.UUID] = None,
    status: Optional[IssueStatus] = None,
    sprint_id: Optional[uuid.UUID] = None,
    assignee_id: Optional[uuid.UUID] = None,
    issue_type: Optional[IssueType] = None,
    label: Optional[str] = None,
    parent_issue_id: Optional[uuid.UUID] = None,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[Sequence[Issue], int]:
    """Issues in the org, newest first. Returns (page, total)."""
    stmt = select(Issue).join(Project, Project.id == Issue.project_id).where(
        Project.org_id == org_id
    )
    if project_id:
        stmt = stmt.where(Issue.project_id == project_id)
    if status:
        stmt = stmt.where(Issue.status == status)
    if sprint_id:
        stmt = stmt.where(Issue.sprint_id == sprint_id)
    if assignee_id:
        stmt = stmt.where(Issue.assignee_ids.any(assignee_id))
    if issue_type:
        stmt = stmt.where(Issue.type == issue_type)
    if label:
        stmt = stmt.where(Issue.labels.any(label))
    if parent_issue_id:
        stmt = stmt.where(Issue.parent_issue_id == parent_issue_id)
    if q:
        pattern = f"%{q.strip()}%"
        stmt = stmt.where(or_(Issue.title.ilike(pattern), Issue.issue_key.ilike(pattern)))

    total = (
        await session.execute(select(func.count()).select_from(stmt.subquery()))
    ).scalar_one()
    result = await session.execute(
        stmt.order_by(Issue.created_at.desc()).offset(offset).limit(limit)
    )
    return result.scalars().all(), total


async def backlog(
    session: AsyncSession, project: Project, q: Optional[str] = None
) -> Sequence[Issue]:
    issues, _ = await list_issues(
        session,
        project.org_id,
        project_id=project.id,
        status=IssueStatus.BACKLOG,
        q=q,
        limit=500,
    )
    return issues


async def update_issue(
    session: AsyncSession,
    project: Project,
    issue: Issue,
    issue_in: IssueUpdate,
    auth: AuthenticatedUser,
) -> Issue:
    if not can_edit_issue(auth.role, auth.user_id, issue):
        raise HTTPException(
            status_code=403,
            detail="Only the reporter, an assignee or a manager can edit this issue",
        )

    data = issue_in.model_dump(exclude_unset=True)

    if "sprint_id" in data:
        await _check_sprint(session, data["sprint_id"], project)
    if "type" in data and data["type"] == IssueType.SUBTASK and not issue.parent_issue_id:
        raise HTTPException(status_code=400, detail="A subtask needs a parent issue")
    if data.get("assignee_ids") is not None:
        data["assignee_ids"] = await _check_assignees(
            session, data["assignee_ids"], auth.org_id
        )

    status = data.pop("status", None)
    if "metadata" in data:
        issue.meta = data.pop("metadata") or {}
    for field, value in data.items():
        if value is None and field in ("title", "type", "priority", "assignee_ids", "labels"):
            continue
        setattr(issue, field, value)
    if status is not None:
        apply_status(issue, IssueStatus(status))

    session.add(issue)
    await session.flush()

    log.info(
        "issue.updated",
        issue_id=str(issue.id),
        issue_key=issue.issue_key,
        fields=sorted(issue_in.model_fields_set),
    )
    return issue


async def set_assignee(
    session: AsyncSession, issue: Issue, user_id: uuid.UUID, auth: AuthenticatedUser, *, add: bool
) -> Issue:
    if not can_edit_issue(auth.role, auth.user_id, issue):
        raise HTTPException(
            status_code=403,
            detail="Only the reporter, an assignee or a manager can edit this issue",
        )
    current = list(issue.assignee_ids or [])
    if add:
        await _check_assignees(session, [user_id], auth.org_id)
        if user_id not in current:
            current.append(user_id)
    else:
        current = [uid for uid in current if uid != user_id]
    issue.assignee_ids = current
    session.add(issue)
    await session.flush()
    return issue


async def set_watching(
    session: AsyncSession, issue: Issue, user_id: uuid.UUID, *, watch: bool
) -> Issue:
    """Watch or unwatch an issue as the caller."""
    current = list(issue.watcher_ids or [])
    if watch and user_id not in current:
        current.append(user_id)
    elif not watch:
        current = [uid for uid in current if uid != user_id]
    issue.watcher_ids = current
    session.add(issue)
    await session.flush()
    return issue


async def delete_issue(
    session: AsyncSession, issue: Issue, auth: AuthenticatedUser
) -> None:
    if not can_delete_issue(auth.role, auth.user_id, issue):
        raise HTTPException(
            status_code=403, detail="Only the reporter or a manager can delete this issue"
        )
    # Subtasks go with their parent via ON DELETE CASCADE
    await session.delete(issue)
    await session.flush()
    log.info("issue.deleted", issue_id=str(issue.id), issue_key=issue.issue_key)
