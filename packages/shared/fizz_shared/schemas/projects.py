import re
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from uuid import UUID
from datetime import datetime

PROJECT_KEY_PATTERN = r"^[A-Z][A-Z0-9]{0,9}$"


def generate_project_key(name: str) -> str:
    """Derive a short project key from its name: uppercase, alphanumerics only, max 5."""
    return re.sub(r"[^A-Z0-9]+", "", name.upper())[:5]


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    key: Optional[str] = Field(None, description="Short key used in issue keys (derived when omitted)")
    description: Optional[str] = None

    @field_validator("key")
    @classmethod
    def _upper_key(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v

    @model_validator(mode="after")
    def _derive_key(self) -> "ProjectCreate":
        if not self.key:
            self.key = generate_project_key(self.name)
        if not re.match(PROJECT_KEY_PATTERN, self.key):
            raise ValueError(
                "Project key must start with a letter and contain 1-10 letters or digits"
            )
        return self


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None


class ProjectRead(BaseModel):
    id: UUID
    org_id: UUID
    name: str
    key: str
    description: Optional[str] = None
    issue_count: int = 0
    open_issue_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
