"""
Board service: column configuration and the grouped board view.
"""

from __future__ import annotations

import uuid
from typing import Sequence

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.board import Board
from app.models.issue import Issue
from app.models.project import Project
from app.services.issues import to_read
from fizz_shared.schemas.boards import (
    BoardColumn,
    BoardColumnView,
    BoardCreate,
    BoardFilter,
    BoardRead,
    BoardUpdate,
    BoardView,
)

log = structlog.get_logger()


def to_board_read(board: Board) -> BoardRead:
    return BoardRead(
        id=board.id,
        project_id=board.project_id,
        name=board.name,
        columns=[BoardColumn.model_validate(c) for c in board.columns or []],
        filter_query=BoardFilter.model_validate(board.filter_query or {}),
        created_at=board.created_at,
        updated_at=board.updated_at,
    )


def matches_filter(issue: Issue, board_filter: BoardFilter) -> bool:
    if board_filter.sprint_id and issue.sprint_id != board_filter.sprint_id:
        return False
    if board_filter.assignee_id and board_filter.assignee_id not in (issue.assignee_ids or []):
        return False
    if board_filter.labels and not set(board_filter.labels) & set(issue.labels or []):
        return False
    if board_filter.types and issue.type not in board_filter.types:
        return False
    return True


def group_issues(
    columns: Sequence[BoardColumn],
    issues: Sequence[Issue],
    board_filter: BoardFilter,
) -> list[BoardColumnView]:
    """Bucket issues into columns by status, in column order.

    Issues whose status has no column are left off the board.
    """
    buckets: dict[str, list[Issue]] = {c.id.value: [] for c in columns}
    for issue in issues:
        status = getattr(issue.status, "value", issue.status)
        if status in buckets and matches_filter(issue, board_filter):
            buckets[status].append(issue)

    return [
        BoardColumnView(
            id=column.id,
            label=column.label,
            count=len(buckets[column.id.value]),
            issues=[to_read(i) for i in buckets[column.id.value]],
        )
        for column in columns
    ]


async def get_board_or_404(
    session: AsyncSession, board_id: uuid.UUID, project: Project
) -> Board:
    board = await session.get(Board, board_id)
    if not board or board.project_id != project.id:
        raise HTTPException(status_code=404, detail="Board not found")
    return board


async def list_boards(session: AsyncSession, project: Project) -> list[Board]:
    result = await session.execute(
        select(Board).where(Board.project_id == project.id).order_by(Board.created_at)
    )
    return list(result.scalars().all())


async def create_board(
    session: AsyncSession, project: Project, board_in: BoardCreate
) -> Board:
    board = Board(
        project_id=project.id,
        name=board_in.name,
        columns=[c.model_dump(mode="json") for c in board_in.columns],
        filter_query=board_in.filter_query.model_dump(mode="json"),
    )
    session.add(board)
    await session.flush()
    log.info("board.created", board_id=str(board.id), project_id=str(project.id))
    return board


async def update_board(
    session: AsyncSession, board: Board, board_in: BoardUpdate
) -> Board:
    if board_in.name is not None:
        board.name = board_in.name
    if board_in.columns is not None:
        board.columns = [c.model_dump(mode="json") for c in board_in.columns]
    if board_in.filter_query is not None:
        board.filter_query = board_in.filter_query.model_dump(mode="json")
    session.add(board)
    await session.flush()
    return board


async def delete_board(session: AsyncSession, board: Board) -> None:
    await session.delete(board)
    await session.flush()


async def board_view(session: AsyncSession, board: Board) -> BoardView:
    read = to_board_read(board)
    result = await session.execute(
        select(Issue)
        .where(Issue.project_id == board.project_id)
        .order_by(Issue.priority.desc(), Issue.created_at.desc())
    )
    columns = group_issues(read.columns, result.scalars().all(), read.filter_query)
    return BoardView(board=read, columns=columns)
