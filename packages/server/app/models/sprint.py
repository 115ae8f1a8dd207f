"""Sprint model (time-boxed plan within a project)."""

from datetime import date
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from fizz_shared.schemas.common import SprintStatus

from .base import TimestampMixin, UUIDMixin, pg_enum


class Sprint(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "sprints"

    project_id: uuid.UUID = Field(
        sa_column_args=[sa.ForeignKey("projects.id", ondelete="CASCADE")], nullable=False, index=True
    )
    name: str = Field(nullable=False)
    type: str = Field(default="sprint", nullable=False)  # sprint | spike
    goal: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: SprintStatus = Field(
        default=SprintStatus.PLANNED, sa_type=pg_enum(SprintStatus, "sprint_status"), nullable=False
    )
    created_by: uuid.UUID = Field(foreign_key="profiles.id", nullable=False)
