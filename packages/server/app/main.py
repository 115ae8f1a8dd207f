"""
Fizz API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from app.core.config import get_settings
from app.core.database import engine
from app.core.middleware import CSRF_HEADER, CSRFMiddleware, SecurityHeadersMiddleware, error_response
from app.core.redis import close_redis, get_redis
from app.api.v1 import router as api_v1_router
from app.api.v1.auth import router as auth_router
from app.api.v1.deployments import webhook_router

settings = get_settings()
log = structlog.get_logger()


async def integrity_error_handler(request: Request, exc: IntegrityError):
    """Uniqueness/foreign-key violations that escaped the services become 409s."""
    log.warning("db.integrity_error", path=request.url.path, error=str(exc.orig))
    return error_response(409, "CONFLICT", "The change conflicts with existing data.")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Fizz",
        description="Agile project tracking: projects, sprints, issues and boards.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (order matters: outermost first)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", CSRF_HEADER],
    )

    app.add_exception_handler(IntegrityError, integrity_error_handler)

    # Auth routes (not org-scoped)
    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    # Inbound webhooks (signature-authenticated)
    app.include_router(webhook_router, prefix="/webhooks", tags=["Webhooks"])

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: database and Redis must answer."""
        checks = {}
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception as exc:
            log.warning("ready.database_unavailable", error=str(exc))
            checks["database"] = "unavailable"
        try:
            redis = await get_redis()
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as exc:
            log.warning("ready.redis_unavailable", error=str(exc))
            checks["redis"] = "unavailable"

        if any(v != "ok" for v in checks.values()):
            return error_response(503, "NOT_READY", f"Dependencies unavailable: {checks}")
        return {"status": "ready", "checks": checks}

    @app.on_event("startup")
    async def on_startup():
        log.info("Fizz starting", debug=settings.debug)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Fizz shutting down")
        await close_redis()

    return app


app = create_app()
