"""
Security middleware: CSRF protection and security headers.
"""

from __future__ import annotations

import secrets

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

SESSION_COOKIE = "fizz_session"
CSRF_COOKIE = "fizz_csrf"

CSRF_HEADER = "X-CSRF-Token"

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}
# Signature-authenticated receivers
CSRF_EXEMPT_PREFIXES = ("/webhooks/",)


def error_response(status: int, code: str, message: str) -> JSONResponse:
    """JSON error envelope shared by middleware and exception handlers."""
    return JSONResponse(
        status_code=status,
        content={"error": {"code": code, "message": message, "status": status}},
    )

# ---------------------------------------------------------------------------
# Security Headers
# ---------------------------------------------------------------------------

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data: https://fastapi.tiangolo.com; "
        "connect-src 'self' https://api.github.com; "
        "frame-ancestors 'none';"
    ),
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains; preload",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security headers to every response."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value
        return response


# ---------------------------------------------------------------------------
# CSRF Protection (Double-Submit Cookie)
# ---------------------------------------------------------------------------

def csrf_exempt(request: Request) -> bool:
    """Requests that cannot ride on a browser session."""
    if request.method in SAFE_METHODS:
        return True
    if request.url.path.startswith(CSRF_EXEMPT_PREFIXES):
        return True
    # Bearer clients and cookieless callers are not exposed to CSRF
    return bool(request.headers.get("Authorization")) or SESSION_COOKIE not in request.cookies


class CSRFMiddleware(BaseHTTPMiddleware):
    """The ``X-CSRF-Token`` header must echo the ``fizz_csrf`` cookie on unsafe requests."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if csrf_exempt(request):
            return await call_next(request)

        cookie_token = request.cookies.get(CSRF_COOKIE, "")
        header_token = request.headers.get(CSRF_HEADER, "")
        if not cookie_token or not secrets.compare_digest(cookie_token.encode(), header_token.encode()):
            return error_response(403, "CSRF_VALIDATION_FAILED", "Invalid or missing CSRF token.")

        return await call_next(request)
