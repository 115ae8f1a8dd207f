"""
Issue endpoints: CRUD, subtasks, assignees and watchers.

- Keys are allocated per project (``WEB-1``, ``WEB-2``, ...)
- Edits: reporter, an assignee, or manager and above
- Moving to done stamps closed_at; leaving done clears it
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.projects import get_project
from app.core.auth import AuthenticatedUser, require_contributor, require_member
from app.core.database import get_session
from app.models.issue import Issue
from app.models.project import Project
from app.services import issues as issue_service
from fizz_shared.schemas.common import IssueStatus, IssueType
from fizz_shared.schemas.issues import (
    AssigneeChange,
    IssueCreate,
    IssueListResponse,
    IssueRead,
    IssueUpdate,
)

router = APIRouter()
router_org = APIRouter()


async def get_issue(
    issueId: uuid.UUID,
    project: Project = Depends(get_project),
    session: AsyncSession = Depends(get_session),
) -> Issue:
    return await issue_service.get_issue_or_404(session, issueId, project)


# ---------------------------------------------------------------------------
# Org-wide search
# ---------------------------------------------------------------------------


@router_org.get("", response_model=IssueListResponse)
async def search_issues(
    project_id: Optional[uuid.UUID] = None,
    status: Optional[IssueStatus] = None,
    sprint_id: Optional[uuid.UUID] = None,
    assignee_id: Optional[uuid.UUID] = None,
    type: Optional[IssueType] = None,
    label: Optional[str] = None,
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Issues across the org, newest first. ``q`` matches title or key."""
    issues, total = await issue_service.list_issues(
        session,
        auth.org_id,
        project_id=project_id,
        status=status,
        sprint_id=sprint_id,
        assignee_id=assignee_id,
        issue_type=type,
        label=label,
        q=q,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    return IssueListResponse(data=[issue_service.to_read(i) for i in issues], total=total)


# ---------------------------------------------------------------------------
# Project issues
# ---------------------------------------------------------------------------


@router.get("", response_model=IssueListResponse)
async def list_issues(
    status: Optional[IssueStatus] = None,
    sprint_id: Optional[uuid.UUID] = None,
    assignee_id: Optional[uuid.UUID] = None,
    type: Optional[IssueType] = None,
    label: Optional[str] = None,
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    project: Project = Depends(get_project),
    session: AsyncSession = Depends(get_session),
):
    issues, total = await issue_service.list_issues(
        session,
        project.org_id,
        project_id=project.id,
        status=status,
        sprint_id=sprint_id,
        assignee_id=assignee_id,
        issue_type=type,
        label=label,
        q=q,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    return IssueListResponse(data=[issue_service.to_read(i) for i in issues], total=total)


@router.post("", response_model=IssueRead, status_code=201)
async def create_issue(
    issue_in: IssueCreate,
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(require_contributor),
    session: AsyncSession = Depends(get_session),
):
    """Create an issue; the caller is the reporter and first watcher."""
    issue = await issue_service.create_issue(session, project, issue_in, auth)
    await session.refresh(issue)
    return issue_service.to_read(issue)


@router.get("/key/{issueKey}", response_model=IssueRead)
async def get_issue_by_key(
    issueKey: str,
    project: Project = Depends(get_project),
    session: AsyncSession = Depends(get_session),
):
    issue = await issue_service.get_issue_by_key(session, project, issueKey)
    return issue_service.to_read(issue)


@router.get("/{issueId}", response_model=IssueRead)
async def get_issue_endpoint(issue: Issue = Depends(get_issue)):
    return issue_service.to_read(issue)


@router.get("/{issueId}/subtasks", response_model=List[IssueRead])
async def list_subtasks(
    issue: Issue = Depends(get_issue),
    project: Project = Depends(get_project),
    session: AsyncSession = Depends(get_session),
):
    subtasks, _ = await issue_service.list_issues(
        session, project.org_id, project_id=project.id, parent_issue_id=issue.id, limit=500
    )
    return [issue_service.to_read(i) for i in subtasks]


@router.patch("/{issueId}", response_model=IssueRead)
async def update_issue(
    issue_in: IssueUpdate,
    issue: Issue = Depends(get_issue),
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    issue = await issue_service.update_issue(session, project, issue, issue_in, auth)
    await session.refresh(issue)
    return issue_service.to_read(issue)


@router.delete("/{issueId}", status_code=204)
async def delete_issue(
    issue: Issue = Depends(get_issue),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    await issue_service.delete_issue(session, issue, auth)


# ---------------------------------------------------------------------------
# Assignees & watchers
# ---------------------------------------------------------------------------


@router.post("/{issueId}/assignees", response_model=IssueRead)
async def add_assignee(
    body: AssigneeChange,
    issue: Issue = Depends(get_issue),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    issue = await issue_service.set_assignee(session, issue, body.user_id, auth, add=True)
    return issue_service.to_read(issue)


@router.delete("/{issueId}/assignees/{userId}", response_model=IssueRead)
async def remove_assignee(
    userId: uuid.UUID,
    issue: Issue = Depends(get_issue),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    issue = await issue_service.set_assignee(session, issue, userId, auth, add=False)
    return issue_service.to_read(issue)


@router.post("/{issueId}/watch", response_model=IssueRead)
async def watch_issue(
    issue: Issue = Depends(get_issue),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    issue = await issue_service.set_watching(session, issue, auth.user_id, watch=True)
    return issue_service.to_read(issue)


@router.delete("/{issueId}/watch", response_model=IssueRead)
async def unwatch_issue(
    issue: Issue = Depends(get_issue),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    issue = await issue_service.set_watching(session, issue, auth.user_id, watch=False)
    return issue_service.to_read(issue)
