"""Dashboard aggregates and the onboarding checklist."""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.invite import Invite
from app.models.issue import Issue
from app.models.project import Project
from app.models.user_role import UserRole
from fizz_shared.schemas.common import IssueStatus
from fizz_shared.schemas.dashboard import ChecklistItem, DashboardStats, OnboardingChecklist


async def stats(session: AsyncSession, org_id: uuid.UUID) -> DashboardStats:
    projects = (
        await session.execute(
            select(func.count()).select_from(Project).where(Project.org_id == org_id)
        )
    ).scalar_one()

    result = await session.execute(
        select(
            func.count().filter(Issue.status != IssueStatus.DONE),
            func.count().filter(Issue.status == IssueStatus.DONE),
        )
        .select_from(Issue)
        .join(Project, Project.id == Issue.project_id)
        .where(Project.org_id == org_id)
    )
    active, completed = result.one()
    return DashboardStats(projects=projects, active_issues=active, completed_issues=completed)


def build_checklist(
    has_org: bool, has_project: bool, has_issue: bool, has_team: bool
) -> OnboardingChecklist:
    """Getting-started steps; each one unlocks once the previous is possible."""
    items = [
        ChecklistItem(
            id="create_org",
            label="Create your organization",
            description="Set up a workspace for your team.",
            done=has_org,
            available=True,
            action_label="Create organization",
        ),
        ChecklistItem(
            id="create_project",
            label="Create a project",
            description="Projects hold your issues, sprints and boards.",
            done=has_project,
            available=has_org,
            action_label="New project",
        ),
        ChecklistItem(
            id="create_issue",
            label="Create your first issue",
            description="Track a task, bug or story.",
            done=has_issue,
            available=has_project,
            action_label="New issue",
        ),
        ChecklistItem(
            id="invite_team",
            label="Invite your team",
            description="Bring collaborators into the organization.",
            done=has_team,
            available=has_org,
            action_label="Invite members",
        ),
    ]
    done = sum(1 for item in items if item.done)
    next_step = next((item for item in items if not item.done), None)
    return OnboardingChecklist(
        items=items,
        progress=round(done * 100 / len(items), 1),
        next_step=next_step,
    )


async def onboarding(
    session: AsyncSession, org_id: Optional[uuid.UUID]
) -> OnboardingChecklist:
    if org_id is None:
        return build_checklist(False, False, False, False)

    async def exists(stmt) -> bool:
        return (await session.execute(stmt.limit(1))).first() is not None

    has_project = await exists(select(Project.id).where(Project.org_id == org_id))
    has_issue = await exists(
        select(Issue.id)
        .join(Project, Project.id == Issue.project_id)
        .where(Project.org_id == org_id)
    )
    # Another member or any invite sent counts as inviting the team
    members = (
        await session.execute(
            select(func.count()).select_from(UserRole).where(UserRole.org_id == org_id)
        )
    ).scalar_one()
    has_invite = await exists(select(Invite.id).where(Invite.org_id == org_id))
    return build_checklist(True, has_project, has_issue, members > 1 or has_invite)
