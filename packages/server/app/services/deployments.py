"""
Deployment tracking: manual records plus GitHub webhook ingestion.

GitHub signs each delivery with ``X-Hub-Signature-256: sha256=<hex>``, an
HMAC-SHA256 of the raw request body keyed by the webhook secret.
"""

from __future__ import annotations

import hashlib
import hmac
import uuid
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.deployment import Deployment
from app.models.issue import Issue
from app.models.project import Project
from app.services.issue_keys import extract_issue_key
from fizz_shared.schemas.common import DeploymentStatus
from fizz_shared.schemas.deployments import DeploymentCreate, DeploymentStatusUpdate

log = structlog.get_logger()

PR_ACTIONS = {"opened", "reopened", "synchronize"}

GITHUB_DEPLOYMENT_STATES: dict[str, DeploymentStatus] = {
    "pending": DeploymentStatus.BUILDING,
    "queued": DeploymentStatus.BUILDING,
    "in_progress": DeploymentStatus.BUILDING,
    "success": DeploymentStatus.READY,
    "failure": DeploymentStatus.FAILED,
    "error": DeploymentStatus.FAILED,
}


def sign_payload(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(secret, body), signature)


def map_deployment_state(state: str) -> Optional[DeploymentStatus]:
    return GITHUB_DEPLOYMENT_STATES.get(state)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def list_deployments(
    session: AsyncSession, project: Project, issue_id: Optional[uuid.UUID] = None
) -> list[Deployment]:
    stmt = select(Deployment).where(Deployment.project_id == project.id)
    if issue_id:
        stmt = stmt.where(Deployment.issue_id == issue_id)
    result = await session.execute(stmt.order_by(Deployment.created_at.desc()))
    return list(result.scalars().all())


async def _check_issue(
    session: AsyncSession, issue_id: Optional[uuid.UUID], project: Project
) -> None:
    if issue_id is None:
        return
    issue = await session.get(Issue, issue_id)
    if not issue or issue.project_id != project.id:
        raise HTTPException(status_code=400, detail="Issue must belong to the same project")


async def create_deployment(
    session: AsyncSession, project: Project, deployment_in: DeploymentCreate
) -> Deployment:
    await _check_issue(session, deployment_in.issue_id, project)
    deployment = Deployment(
        project_id=project.id,
        issue_id=deployment_in.issue_id,
        branch_name=deployment_in.branch_name,
        pr_number=deployment_in.pr_number,
        vercel_preview_url=deployment_in.vercel_preview_url,
        status=DeploymentStatus.CREATED.value,
    )
    session.add(deployment)
    await session.flush()
    log.info("deployment.created", deployment_id=str(deployment.id), branch=deployment.branch_name)
    return deployment


async def get_deployment_or_404(
    session: AsyncSession, deployment_id: uuid.UUID, project: Project
) -> Deployment:
    deployment = await session.get(Deployment, deployment_id)
    if not deployment or deployment.project_id != project.id:
        raise HTTPException(status_code=404, detail="Deployment not found")
    return deployment


async def update_status(
    session: AsyncSession, deployment: Deployment, update_in: DeploymentStatusUpdate
) -> Deployment:
    deployment.status = update_in.status.value
    if update_in.vercel_preview_url is not None:
        deployment.vercel_preview_url = update_in.vercel_preview_url
    session.add(deployment)
    await session.flush()
    log.info("deployment.status_changed", deployment_id=str(deployment.id), status=deployment.status)
    return deployment


# ---------------------------------------------------------------------------
# GitHub webhook
# ---------------------------------------------------------------------------


async def _find_issue_id(
    session: AsyncSession, project: Project, branch_name: str
) -> Optional[uuid.UUID]:
    key = extract_issue_key(branch_name, project.key)
    if not key:
        return None
    result = await session.execute(
        select(Issue.id).where(Issue.project_id == project.id, Issue.issue_key == key)
    )
    return result.scalar_one_or_none()


async def _find_by_branch(
    session: AsyncSession, project: Project, branch_name: str
) -> Optional[Deployment]:
    result = await session.execute(
        select(Deployment)
        .where(Deployment.project_id == project.id, Deployment.branch_name == branch_name)
        .order_by(Deployment.created_at.desc())
    )
    return result.scalars().first()


def _section(data: dict, key: str) -> dict:
    """A nested payload object, or empty when missing or malformed."""
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _text(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    return value if isinstance(value, str) and value else None


async def handle_pull_request(
    session: AsyncSession, project: Project, payload: dict
) -> Optional[Deployment]:
    """Upsert the deployment for a PR branch, linking the issue named in it."""
    if _text(payload, "action") not in PR_ACTIONS:
        return None
    pr = _section(payload, "pull_request")
    branch_name = _text(_section(pr, "head"), "ref")
    if not branch_name:
        return None

    deployment = await _find_by_branch(session, project, branch_name)
    if deployment is None:
        deployment = Deployment(
            project_id=project.id,
            branch_name=branch_name,
            status=DeploymentStatus.CREATED.value,
        )
    number = pr.get("number") or payload.get("number")
    deployment.pr_number = number if isinstance(number, int) else None
    if deployment.issue_id is None:
        deployment.issue_id = await _find_issue_id(session, project, branch_name)

    session.add(deployment)
    await session.flush()
    log.info(
        "webhook.pull_request",
        project_id=str(project.id),
        branch=branch_name,
        pr_number=deployment.pr_number,
        issue_id=str(deployment.issue_id) if deployment.issue_id else None,
    )
    return deployment


async def handle_deployment_status(
    session: AsyncSession, project: Project, payload: dict
) -> Optional[Deployment]:
    status_info = _section(payload, "deployment_status")
    status = map_deployment_state(_text(status_info, "state") or "")
    branch_name = _text(_section(payload, "deployment"), "ref")
    if status is None or not branch_name:
        return None

    deployment = await _find_by_branch(session, project, branch_name)
    if deployment is None:
        deployment = Deployment(project_id=project.id, branch_name=branch_name)
        deployment.issue_id = await _find_issue_id(session, project, branch_name)

    deployment.status = status.value
    url = _text(status_info, "environment_url") or _text(status_info, "target_url")
    if url:
        deployment.vercel_preview_url = url
    session.add(deployment)
    await session.flush()
    log.info(
        "webhook.deployment_status",
        project_id=str(project.id),
        branch=branch_name,
        status=deployment.status,
    )
    return deployment
