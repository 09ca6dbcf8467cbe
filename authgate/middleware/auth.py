"""
Bearer-token gate for protected paths

Every credential failure (missing header, malformed, forged, expired or
revoked token) produces the same 401 body.  A session-store outage is an
infrastructure fault and is answered with a retryable 503 instead.
"""

from typing import Optional

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from authgate.core.errors import StoreUnavailable, TokenValidationError

logger = structlog.get_logger(__name__)

RETRY_AFTER_SECONDS = "5"


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the credential from an ``Authorization: Bearer <token>`` value."""
    if not authorization:
        return None
    scheme, _, credential = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    credential = credential.strip()
    return credential or None


def unauthorized_response(request: Request) -> JSONResponse:
    error = TokenValidationError()
    content = error.to_payload()
    content["request_id"] = getattr(request.state, "request_id", "unknown")
    return JSONResponse(
        status_code=error.status_code,
        content=content,
        headers={"WWW-Authenticate": 'Bearer error="invalid_token"'},
    )


def unavailable_response(request: Request, exc: StoreUnavailable) -> JSONResponse:
    content = exc.to_payload()
    content["request_id"] = getattr(request.state, "request_id", "unknown")
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers={"Retry-After": RETRY_AFTER_SECONDS},
    )


def _is_protected(path: str, prefixes) -> bool:
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in prefixes)


async def jwt_auth_middleware(request: Request, call_next):
    """Validate the bearer JWT on protected paths and expose its claims."""
    settings = request.app.state.settings
    if not _is_protected(request.url.path, settings.protected_path_prefixes):
        return await call_next(request)

    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        logger.info("Request rejected", path=request.url.path, reason="missing_bearer")
        return unauthorized_response(request)

    token_manager = request.app.state.token_manager
    try:
        claims = await token_manager.validate(token)
    except TokenValidationError as e:
        logger.info(
            "Request rejected",
            path=request.url.path,
            reason=type(e).__name__,
            detail=e.reason,
        )
        return unauthorized_response(request)
    except StoreUnavailable as e:
        logger.error("Token validation unavailable", path=request.url.path, detail=e.reason)
        return unavailable_response(request, e)

    request.state.claims = claims
    return await call_next(request)
