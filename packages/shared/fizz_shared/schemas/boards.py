"""Kanban board schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, UUID4, field_validator

from .common import IssueStatus, IssueType
from .issues import IssueRead


class BoardColumn(BaseModel):
    id: IssueStatus
    label: str = Field(..., min_length=1, max_length=50)


DEFAULT_BOARD_COLUMNS: list[BoardColumn] = [
    BoardColumn(id=IssueStatus.BACKLOG, label="Backlog"),
    BoardColumn(id=IssueStatus.TODO, label="To Do"),
    BoardColumn(id=IssueStatus.IN_PROGRESS, label="In Progress"),
    BoardColumn(id=IssueStatus.IN_REVIEW, label="In Review"),
    BoardColumn(id=IssueStatus.DONE, label="Done"),
]


class BoardFilter(BaseModel):
    """Saved filter applied when rendering a board."""
    sprint_id: Optional[UUID4] = None
    assignee_id: Optional[UUID4] = None
    labels: List[str] = Field(default_factory=list)
    types: List[IssueType] = Field(default_factory=list)


def _unique_columns(columns: Optional[List[BoardColumn]]) -> Optional[List[BoardColumn]]:
    if columns is None:
        return None
    ids = [c.id for c in columns]
    if len(ids) != len(set(ids)):
        raise ValueError("Board columns must not repeat a status")
    return columns


class BoardCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    columns: List[BoardColumn] = Field(default_factory=lambda: list(DEFAULT_BOARD_COLUMNS))
    filter_query: BoardFilter = Field(default_factory=BoardFilter)

    @field_validator("columns")
    @classmethod
    def check_columns(cls, v):
        return _unique_columns(v)


class BoardUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    columns: Optional[List[BoardColumn]] = None
    filter_query: Optional[BoardFilter] = None

    @field_validator("columns")
    @classmethod
    def check_columns(cls, v):
        return _unique_columns(v)


class BoardRead(BaseModel):
    id: UUID4
    project_id: UUID4
    name: str
    columns: List[BoardColumn]
    filter_query: BoardFilter
    created_at: datetime
    updated_at: datetime


class BoardColumnView(BaseModel):
    id: IssueStatus
    label: str
    count: int
    issues: List[IssueRead]


class BoardView(BaseModel):
    board: BoardRead
    columns: List[BoardColumnView]
