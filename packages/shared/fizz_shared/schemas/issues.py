"""Issue-related Pydantic schemas for shared use across server and frontend codegen."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import UUID4

from .common import IssuePriority, IssueStatus, IssueType


def _clean_labels(labels: Optional[List[str]]) -> Optional[List[str]]:
    if labels is None:
        return None
    seen: list[str] = []
    for label in labels:
        label = label.strip()
        if label and label not in seen:
            seen.append(label)
    return seen


# ---------------------------------------------------------------------------
# Issue CRUD
# ---------------------------------------------------------------------------

class IssueCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    type: IssueType = IssueType.TASK
    priority: IssuePriority = IssuePriority.MEDIUM
    sprint_id: Optional[UUID4] = None
    parent_issue_id: Optional[UUID4] = None
    estimate_points: Optional[int] = Field(None, ge=0)
    estimate_hours: Optional[float] = Field(None, ge=0)
    assignee_ids: List[UUID4] = Field(default_factory=list)
    labels: List[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("labels")
    @classmethod
    def normalize_labels(cls, v):
        return _clean_labels(v)


class IssueUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    type: Optional[IssueType] = None
    priority: Optional[IssuePriority] = None
    status: Optional[IssueStatus] = None
    sprint_id: Optional[UUID4] = None
    estimate_points: Optional[int] = Field(None, ge=0)
    estimate_hours: Optional[float] = Field(None, ge=0)
    assignee_ids: Optional[List[UUID4]] = None
    labels: Optional[List[str]] = None
    metadata: Optional[dict[str, Any]] = None

    @field_validator("labels")
    @classmethod
    def normalize_labels(cls, v):
        return _clean_labels(v)


class IssueRead(BaseModel):
    id: UUID4
    project_id: UUID4
    sprint_id: Optional[UUID4] = None
    parent_issue_id: Optional[UUID4] = None
    issue_key: str
    type: IssueType
    title: str
    description: Optional[str] = None
    priority: IssuePriority
    status: IssueStatus
    estimate_points: Optional[int] = None
    estimate_hours: Optional[float] = None
    reporter_id: UUID4
    assignee_ids: List[UUID4] = Field(default_factory=list)
    watcher_ids: List[UUID4] = Field(default_factory=list)
    labels: List[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    closed_at: Optional[datetime] = None


class IssueListResponse(BaseModel):
    data: List[IssueRead]
    total: int


# ---------------------------------------------------------------------------
# People on an issue
# ---------------------------------------------------------------------------

class AssigneeChange(BaseModel):
    """Request body for POST/DELETE /issues/{issueId}/assignees."""
    user_id: UUID4
