"""
Issue key allocation (``KEY-N``, sequential per project).

The database function ``generate_issue_key`` computes the next key; the
``(project_id, issue_key)`` unique constraint rejects the loser of a race,
which is retried inside a savepoint.
"""

from __future__ import annotations

import re
import uuid
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.issue import Issue

log = structlog.get_logger()

MAX_KEY_ATTEMPTS = 5
ISSUE_KEY_CONSTRAINT = "issues_project_id_issue_key_key"


def extract_issue_key(branch_name: str, project_key: str) -> Optional[str]:
    """Find ``PROJECTKEY-N`` in a branch name, case-insensitively.

    "feature/web-42-login" -> "WEB-42"
    """
    match = re.search(
        rf"(?<![A-Za-z0-9]){re.escape(project_key)}-(\d+)(?!\d)",
        branch_name,
        re.IGNORECASE,
    )
    if not match:
        return None
    return f"{project_key.upper()}-{int(match.group(1))}"


async def generate_issue_key(session: AsyncSession, project_id: uuid.UUID) -> str:
    result = await session.execute(
        text("SELECT generate_issue_key(:project_id)"), {"project_id": project_id}
    )
    return result.scalar_one()


def _is_key_conflict(exc: IntegrityError) -> bool:
    return ISSUE_KEY_CONSTRAINT in str(exc.orig)


async def insert_with_key(session: AsyncSession, issue: Issue) -> Issue:
    """Allocate a key and insert ``issue``, retrying lost races."""
    for attempt in range(1, MAX_KEY_ATTEMPTS + 1):
        issue.issue_key = await generate_issue_key(session, issue.project_id)
        try:
            async with session.begin_nested():
                session.add(issue)
                await session.flush()
            return issue
        except IntegrityError as exc:
            if not _is_key_conflict(exc):
                raise
            log.warning(
                "issue.key_conflict",
                project_id=str(issue.project_id),
                issue_key=issue.issue_key,
                attempt=attempt,
            )

    raise HTTPException(
        status_code=409, detail="Could not allocate an issue key, please retry"
    )
