"""
CampusPerks - HTTP Middleware
Request correlation ids, timing, and access logging per portal surface
"""

import time
from typing import Callable, Set
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from app.core.config import settings
from app.core.logging_config import (
    logger,
    set_request_id,
    set_account_id,
    generate_request_id,
)


QUIET_PATHS: Set[str] = {
    "/health",
    "/",
    "/favicon.ico",
    "/docs",
    "/redoc",
    "/openapi.json",
}


def should_skip_logging(path: str) -> bool:
    return path in QUIET_PATHS


def portal_surface(path: str) -> str:
    """Which part of the portal a request belongs to: admin, vendor, auth or public"""
    prefix = f"/api/{settings.API_VERSION}/"
    if not path.startswith(prefix):
        return "public"
    head = path[len(prefix):].split("/", 1)[0]
    return head if head in ("admin", "vendor", "auth") else "public"


def level_for_status(status_code: int) -> str:
    if status_code >= 500:
        return "error"
    if status_code >= 400:
        return "warning"
    return "info"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every HTTP request once it completes and stamps the response with
    X-Request-ID and X-Response-Time.

    The account id context var is filled in by the auth dependency, so log
    lines emitted inside a handler carry both ids.
    """

    def __init__(self, app: ASGIApp, slow_request_ms: float = 1000.0):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)

        path = request.url.path
        quiet = should_skip_logging(path)
        fields = {
            "http_method": request.method,
            "http_path": path,
            "portal_surface": portal_surface(path),
            "client_ip": request.client.host if request.client else "unknown",
        }
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"{request.method} {path} raised {type(exc).__name__}",
                exc_info=True,
                extra={
                    **fields,
                    "event_type": "http_request_error",
                    "duration_ms": (time.perf_counter() - started) * 1000,
                    "error_type": type(exc).__name__,
                },
            )
            raise
        finally:
            set_request_id("")
            set_account_id("")

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        if not quiet:
            getattr(logger, level_for_status(response.status_code))(
                f"{request.method} {path} - {response.status_code} ({duration_ms:.2f}ms)",
                extra={
                    **fields,
                    "event_type": "http_request_complete",
                    "http_status": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            if duration_ms > self.slow_request_ms:
                logger.warning(
                    f"Slow {fields['portal_surface']} request: {request.method} {path}",
                    extra={**fields, "event_type": "slow_request", "duration_ms": duration_ms},
                )

        return response


__all__ = [
    "RequestLoggingMiddleware",
    "should_skip_logging",
    "portal_surface",
    "QUIET_PATHS",
]
