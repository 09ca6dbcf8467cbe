"""
Error handlers for the credential service

Every error body has the shape ``{"error", "error_description",
"request_id"}``; internal reasons and stack traces only reach the log.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from authgate.core.errors import AuthError, InvalidRequest, StoreUnavailable, TokenValidationError
from authgate.middleware.auth import RETRY_AFTER_SECONDS

logger = structlog.get_logger(__name__)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


async def auth_error_handler(request: Request, exc: AuthError):
    """Translate a credential-core exception into its RFC-style response."""
    log = logger.warning if exc.status_code >= 500 else logger.info
    log(
        "Request failed",
        error=exc.error_code,
        error_type=type(exc).__name__,
        reason=exc.reason,
        path=request.url.path,
    )

    content = exc.to_payload()
    content["request_id"] = _request_id(request)
    headers = {}
    if isinstance(exc, TokenValidationError):
        headers["WWW-Authenticate"] = 'Bearer error="invalid_token"'
        # Uniform outward description regardless of the validation failure
        content["error_description"] = TokenValidationError.default_description
    if isinstance(exc, StoreUnavailable):
        headers["Retry-After"] = RETRY_AFTER_SECONDS
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors as ``invalid_request``."""
    fields = sorted({".".join(str(x) for x in err["loc"][1:]) for err in exc.errors()})
    logger.info("Request validation failed", path=request.url.path, fields=fields)

    error = InvalidRequest(
        "Missing or malformed parameter(s): " + ", ".join(f for f in fields if f)
        if any(fields)
        else None
    )
    content = error.to_payload()
    content["request_id"] = _request_id(request)
    return JSONResponse(status_code=error.status_code, content=content)


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions without leaking internals."""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        request_id=_request_id(request),
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "server_error",
            "error_description": "An unexpected error occurred",
            "request_id": _request_id(request),
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
