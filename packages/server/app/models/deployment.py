"""Preview deployment metadata (GitHub branch / PR + Vercel preview)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, _utcnow


class Deployment(UUIDMixin, SQLModel, table=True):
    __tablename__ = "deployments"
    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('created', 'building', 'ready', 'failed')", name="deployments_status_check"
        ),
    )

    issue_id: Optional[uuid.UUID] = Field(
        default=None, sa_column_args=[sa.ForeignKey("issues.id", ondelete="SET NULL")]
    )
    project_id: uuid.UUID = Field(
        sa_column_args=[sa.ForeignKey("projects.id", ondelete="CASCADE")], nullable=False, index=True
    )
    branch_name: str = Field(nullable=False)
    pr_number: Optional[int] = None
    vercel_preview_url: Optional[str] = None
    status: str = Field(default="created", nullable=False)  # created | building | ready | failed
    created_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.text("now()")},
        sa_type=sa.DateTime(timezone=True),
    )
