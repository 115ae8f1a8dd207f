"""
Board endpoints: column configuration and the grouped kanban view.
"""

from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.projects import get_project
from app.core.auth import AuthenticatedUser, require_manager
from app.core.database import get_session
from app.models.board import Board
from app.models.project import Project
from app.services import boards as board_service
from fizz_shared.schemas.boards import BoardCreate, BoardRead, BoardUpdate, BoardView

router = APIRouter()


async def get_board(
    boardId: uuid.UUID,
    project: Project = Depends(get_project),
    session: AsyncSession = Depends(get_session),
) -> Board:
    return await board_service.get_board_or_404(session, boardId, project)


@router.get("", response_model=List[BoardRead])
async def list_boards(
    project: Project = Depends(get_project),
    session: AsyncSession = Depends(get_session),
):
    boards = await board_service.list_boards(session, project)
    return [board_service.to_board_read(b) for b in boards]


@router.post("", response_model=BoardRead, status_code=201)
async def create_board(
    board_in: BoardCreate,
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    board = await board_service.create_board(session, project, board_in)
    return board_service.to_board_read(board)


@router.get("/{boardId}", response_model=BoardView)
async def view_board(
    board: Board = Depends(get_board),
    session: AsyncSession = Depends(get_session),
):
    """The board with the project's issues grouped into its columns."""
    return await board_service.board_view(session, board)


@router.patch("/{boardId}", response_model=BoardRead)
async def update_board(
    board_in: BoardUpdate,
    board: Board = Depends(get_board),
    auth: AuthenticatedUser = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    board = await board_service.update_board(session, board, board_in)
    return board_service.to_board_read(board)


@router.delete("/{boardId}", status_code=204)
async def delete_board(
    board: Board = Depends(get_board),
    auth: AuthenticatedUser = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    await board_service.delete_board(session, board)
