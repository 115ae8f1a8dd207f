"""
ARQ background task: purge invitations that expired without being accepted.

Scheduled to run every hour. Expired invites are kept for a retention window
so inviters can still see them as "expired" before they disappear.
"""

from __future__ import annotations

import structlog
from arq import cron
from arq.connections import RedisSettings

from app.core.config import get_settings
from app.core.database import get_session_context
from app.services.invites import purge_expired_invites

log = structlog.get_logger()
settings = get_settings()


async def purge_stale_invites(ctx: dict) -> int:
    """Delete unaccepted invites past their retention window.

    Returns the number of invites removed.
    """
    async with get_session_context() as session:
        count = await purge_expired_invites(session, settings.invite_retention_days)

    if count:
        log.info("invites.purged", count=count, retention_days=settings.invite_retention_days)
    return count


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [purge_stale_invites]
    cron_jobs = [
        # Run every hour, on the hour
        cron(purge_stale_invites, minute=0),
    ]
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
