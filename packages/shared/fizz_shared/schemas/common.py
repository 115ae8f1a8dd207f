from enum import Enum
from typing import Optional
from pydantic import BaseModel


class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    CONTRIBUTOR = "contributor"
    VIEWER = "viewer"


# Highest privilege first
ROLE_ORDER: list["Role"] = [
    Role.OWNER,
    Role.ADMIN,
    Role.MANAGER,
    Role.CONTRIBUTOR,
    Role.VIEWER,
]


def role_at_least(role: "Role | str", minimum: "Role | str") -> bool:
    """True if ``role`` ranks at or above ``minimum``."""
    return ROLE_ORDER.index(Role(role)) <= ROLE_ORDER.index(Role(minimum))


class IssueType(str, Enum):
    TASK = "task"
    BUG = "bug"
    STORY = "story"
    EPIC = "epic"
    SUBTASK = "subtask"
    SPIKE = "spike"


class IssuePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IssueStatus(str, Enum):
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    BLOCKED = "blocked"
    DONE = "done"


class SprintStatus(str, Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SprintType(str, Enum):
    SPRINT = "sprint"
    SPIKE = "spike"


class DeploymentStatus(str, Enum):
    CREATED = "created"
    BUILDING = "building"
    READY = "ready"
    FAILED = "failed"


class ErrorBody(BaseModel):
    code: str
    message: str
    status: int


class ErrorResponse(BaseModel):
    error: Optional[ErrorBody] = None
