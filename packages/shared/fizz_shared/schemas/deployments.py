from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .common import DeploymentStatus


class DeploymentCreate(BaseModel):
    branch_name: str = Field(..., min_length=1, max_length=255)
    pr_number: Optional[int] = Field(None, ge=1)
    issue_id: Optional[UUID] = None
    vercel_preview_url: Optional[str] = None


class DeploymentStatusUpdate(BaseModel):
    status: DeploymentStatus
    vercel_preview_url: Optional[str] = None


class DeploymentRead(BaseModel):
    id: UUID
    project_id: UUID
    issue_id: Optional[UUID] = None
    branch_name: str
    pr_number: Optional[int] = None
    vercel_preview_url: Optional[str] = None
    status: DeploymentStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class WebhookAck(BaseModel):
    event: str
    action: str
    deployment_id: Optional[UUID] = None
