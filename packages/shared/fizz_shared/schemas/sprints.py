"""Sprint schemas and the sprint status state machine."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field, UUID4, model_validator

from .common import SprintStatus, SprintType

DEFAULT_SPRINT_LENGTH_DAYS = 14

# Valid state transitions for the sprint lifecycle
SPRINT_TRANSITIONS: dict[SprintStatus, list[SprintStatus]] = {
    SprintStatus.PLANNED: [SprintStatus.ACTIVE, SprintStatus.CANCELLED],
    SprintStatus.ACTIVE: [SprintStatus.COMPLETED, SprintStatus.CANCELLED],
    SprintStatus.COMPLETED: [],
    SprintStatus.CANCELLED: [],
}


def validate_sprint_transition(
    current: SprintStatus, target: SprintStatus
) -> tuple[bool, str]:
    """Validate a sprint status change.

    Returns (is_valid, error_message).
    """
    if current == target:
        return False, f"Sprint is already {current.value}"
    if target not in SPRINT_TRANSITIONS[current]:
        allowed = ", ".join(s.value for s in SPRINT_TRANSITIONS[current]) or "none"
        return False, (
            f"Cannot move sprint from {current.value} to {target.value}. "
            f"Allowed: {allowed}"
        )
    return True, ""


def default_sprint_window(today: date, length_days: int = DEFAULT_SPRINT_LENGTH_DAYS) -> tuple[date, date]:
    return today, today + timedelta(days=length_days)


class SprintCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: SprintType = SprintType.SPRINT
    goal: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_dates(self) -> "SprintCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class SprintUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    goal: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class SprintTransition(BaseModel):
    to_status: SprintStatus


class SprintRead(BaseModel):
    id: UUID4
    project_id: UUID4
    name: str
    type: SprintType
    goal: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: SprintStatus
    created_by: UUID4
    issue_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
