"""Issue model (tasks, bugs, stories, epics, subtasks, spikes)."""

from datetime import datetime
from typing import List, Optional
import uuid

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID as PG_UUID
from sqlmodel import Field, SQLModel

from fizz_shared.schemas.common import IssuePriority, IssueStatus, IssueType

from .base import TimestampMixin, UUIDMixin, pg_enum


class Issue(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "issues"
    __table_args__ = (
        sa.UniqueConstraint("project_id", "issue_key", name="issues_project_id_issue_key_key"),
    )

    project_id: uuid.UUID = Field(
        sa_column_args=[sa.ForeignKey("projects.id", ondelete="CASCADE")], nullable=False, index=True
    )
    sprint_id: Optional[uuid.UUID] = Field(
        default=None, sa_column_args=[sa.ForeignKey("sprints.id", ondelete="SET NULL")], index=True
    )
    parent_issue_id: Optional[uuid.UUID] = Field(
        default=None, sa_column_args=[sa.ForeignKey("issues.id", ondelete="CASCADE")]
    )
    issue_key: str = Field(nullable=False)
    type: IssueType = Field(default=IssueType.TASK, sa_type=pg_enum(IssueType, "issue_type"), nullable=False)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    priority: IssuePriority = Field(
        default=IssuePriority.MEDIUM, sa_type=pg_enum(IssuePriority, "issue_priority"), nullable=False
    )
    status: IssueStatus = Field(
        default=IssueStatus.BACKLOG, sa_type=pg_enum(IssueStatus, "issue_status"), nullable=False
    )
    estimate_points: Optional[int] = None
    estimate_hours: Optional[float] = None
    reporter_id: uuid.UUID = Field(foreign_key="profiles.id", nullable=False)
    assignee_ids: List[uuid.UUID] = Field(default_factory=list, sa_type=ARRAY(PG_UUID(as_uuid=True)))
    watcher_ids: List[uuid.UUID] = Field(default_factory=list, sa_type=ARRAY(PG_UUID(as_uuid=True)))
    labels: List[str] = Field(default_factory=list, sa_type=ARRAY(sa.Text()))
    # "metadata" is reserved on declarative classes
    meta: dict = Field(
        default_factory=dict,
        sa_column=sa.Column("metadata", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
    )
    closed_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
