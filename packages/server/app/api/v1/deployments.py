"""
Deployment endpoints (per project) and the GitHub webhook receiver.

POST /webhooks/github/{project_id} is called by GitHub, not by users: it is
authenticated by the ``X-Hub-Signature-256`` HMAC instead of a session.
"""

from __future__ import annotations

import json
import uuid
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.projects import get_project
from app.core.auth import AuthenticatedUser, require_contributor
from app.core.config import get_settings
from app.core.database import get_session
from app.models.project import Project
from app.services import deployments as deployment_service
from fizz_shared.schemas.deployments import (
    DeploymentCreate,
    DeploymentRead,
    DeploymentStatusUpdate,
    WebhookAck,
)

log = structlog.get_logger()
router = APIRouter()
webhook_router = APIRouter()


@router.get("", response_model=List[DeploymentRead])
async def list_deployments(
    issue_id: Optional[uuid.UUID] = None,
    project: Project = Depends(get_project),
    session: AsyncSession = Depends(get_session),
):
    return await deployment_service.list_deployments(session, project, issue_id)


@router.post("", response_model=DeploymentRead, status_code=201)
async def create_deployment(
    deployment_in: DeploymentCreate,
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(require_contributor),
    session: AsyncSession = Depends(get_session),
):
    return await deployment_service.create_deployment(session, project, deployment_in)


@router.patch("/{deploymentId}", response_model=DeploymentRead)
async def update_deployment_status(
    deploymentId: uuid.UUID,
    update_in: DeploymentStatusUpdate,
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(require_contributor),
    session: AsyncSession = Depends(get_session),
):
    deployment = await deployment_service.get_deployment_or_404(session, deploymentId, project)
    return await deployment_service.update_status(session, deployment, update_in)


# ---------------------------------------------------------------------------
# GitHub webhook
# ---------------------------------------------------------------------------


@webhook_router.post("/github/{project_id}", response_model=WebhookAck)
async def github_webhook(
    project_id: uuid.UUID,
    request: Request,
    x_github_event: str = Header("ping"),
    x_hub_signature_256: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
):
    """Ingest pull_request and deployment_status events for a project."""
    secret = get_settings().github_webhook_secret
    if not secret:
        raise HTTPException(status_code=503, detail="GitHub webhook secret is not configured")

    body = await request.body()
    if not deployment_service.verify_signature(secret, body, x_hub_signature_256):
        log.warning("webhook.signature_invalid", project_id=str(project_id), event=x_github_event)
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    project = await session.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")

    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")

    action = payload.get("action")
    action = action if isinstance(action, str) else ""
    deployment = None
    if x_github_event == "pull_request":
        deployment = await deployment_service.handle_pull_request(session, project, payload)
    elif x_github_event == "deployment_status":
        deployment = await deployment_service.handle_deployment_status(session, project, payload)
    else:
        log.info("webhook.ignored", project_id=str(project_id), event=x_github_event)

    return WebhookAck(
        event=x_github_event,
        action=action,
        deployment_id=deployment.id if deployment else None,
    )
