"""Request tracking middleware and global exception handlers.

Every response carries X-Request-ID and X-Process-Time. The request id
is bound into structlog's context so service-layer log lines emitted
while handling the request carry it too.
"""

import time
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import get_settings
from core.exceptions import BackOfficeException

logger = structlog.get_logger(__name__)

_QUIET_PATHS = ("/api/health", "/api/v1/health", "/health")


def _error_body(request: Request, detail: str, **extra) -> dict:
    body = {"detail": detail, "request_id": getattr(request.state, "request_id", None)}
    body.update(extra)
    return body


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Add request ID and timing to every request/response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.error(
                "unhandled_exception",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
                error=str(exc),
                exc_info=True,
            )
            if get_settings().is_production:
                detail = "Internal server error"
            else:
                detail = str(exc) or "Internal server error"
            return JSONResponse(
                status_code=500,
                content={"detail": detail, "request_id": request_id},
                headers={"X-Request-ID": request_id},
            )

        duration_ms = (time.monotonic() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"

        if request.url.path not in _QUIET_PATHS:
            log = logger.warning if response.status_code >= 400 else logger.info
            log(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
                client_ip=request.client.host if request.client else None,
            )

        return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(BackOfficeException)
    async def back_office_handler(request: Request, exc: BackOfficeException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.message, **exc.extra()),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content=_error_body(request, str(exc)))
