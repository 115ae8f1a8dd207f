from typing import List, Optional

from pydantic import BaseModel


class DashboardStats(BaseModel):
    projects: int
    active_issues: int
    completed_issues: int


class ChecklistItem(BaseModel):
    id: str
    label: str
    description: str
    done: bool
    available: bool  # whether the step can be started yet
    action_label: str


class OnboardingChecklist(BaseModel):
    items: List[ChecklistItem]
    progress: float  # percent, 0-100
    next_step: Optional[ChecklistItem] = None
