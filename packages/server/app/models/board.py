"""Kanban board model."""

import uuid

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Board(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "boards"

    project_id: uuid.UUID = Field(
        sa_column_args=[sa.ForeignKey("projects.id", ondelete="CASCADE")], nullable=False, index=True
    )
    name: str = Field(nullable=False)
    columns: list = Field(default_factory=list, sa_type=JSONB, nullable=False)  # [{"id": status, "label": ...}]
    filter_query: dict = Field(default_factory=dict, sa_type=JSONB, nullable=False)
