"""
OAuth 2.0 authorization-code endpoints

Thin adapters over the code manager, the opaque token manager and the client
registry.  The consent page itself is rendered elsewhere; it posts here.
"""

from typing import Optional
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse, RedirectResponse

from authgate.core.dependencies import (
    get_access_token_manager,
    get_client_registry,
    get_code_manager,
    get_user_service,
)
from authgate.core.errors import InvalidClient, InvalidRedirect, InvalidToken, UnsupportedGrantType
from authgate.logging_config import bind_request_context
from authgate.middleware.auth import extract_bearer_token
from authgate.models.auth import OAuthTokenResponse, UserInfo
from authgate.services.access_tokens import AccessTokenManager
from authgate.services.authorization_codes import AuthorizationCodeManager
from authgate.services.client_registry import ClientRegistry
from authgate.services.user_management import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/oauth", tags=["oauth"])

NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def _redirect(redirect_uri: str, **params: Optional[str]) -> RedirectResponse:
    query = urlencode({k: v for k, v in params.items() if v is not None})
    separator = "&" if "?" in redirect_uri else "?"
    return RedirectResponse(f"{redirect_uri}{separator}{query}", status_code=302)


@router.post("/authorize")
async def authorize(
    client_id: str = Form(...),
    redirect_uri: str = Form(...),
    scope: Optional[str] = Form(None),
    state: Optional[str] = Form(None),
    action: str = Form("approve"),
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    registry: ClientRegistry = Depends(get_client_registry),
    users: UserService = Depends(get_user_service),
    codes: AuthorizationCodeManager = Depends(get_code_manager),
):
    """Handle the consent form submission."""
    bind_request_context(client_id=client_id)
    # Never redirect to an unverified URI: client errors are answered directly
    client = await registry.get_client(client_id)
    if client is None:
        raise InvalidClient(reason="unknown client at authorize")
    if redirect_uri != client.redirect_uri:
        raise InvalidRedirect(reason="redirect_uri mismatch at authorize")

    if action != "approve":
        logger.info("Consent denied")
        return _redirect(redirect_uri, error="access_denied", state=state)

    user = await users.authenticate(username or "", password or "")
    if user is None:
        return _redirect(redirect_uri, error="access_denied", state=state)

    record = await codes.issue(client_id, user.user_id, redirect_uri, scope)
    return _redirect(redirect_uri, code=record.code, state=state)


@router.post("/token", response_model=OAuthTokenResponse)
async def token(
    grant_type: str = Form(...),
    code: str = Form(...),
    redirect_uri: str = Form(...),
    client_id: str = Form(...),
    client_secret: str = Form(...),
    registry: ClientRegistry = Depends(get_client_registry),
    codes: AuthorizationCodeManager = Depends(get_code_manager),
    access_tokens: AccessTokenManager = Depends(get_access_token_manager),
):
    """Exchange an authorization code for an opaque access token."""
    bind_request_context(client_id=client_id)
    if grant_type != "authorization_code":
        raise UnsupportedGrantType(reason=f"grant_type={grant_type!r}")

    await registry.authenticate_client(client_id, client_secret)
    grant = await codes.consume(code, client_id, redirect_uri)
    issued = await access_tokens.issue(grant.client_id, grant.user_id, grant.scope)

    body = OAuthTokenResponse(
        access_token=issued.token,
        expires_in=access_tokens.token_ttl_seconds,
        scope=grant.scope,
    )
    return JSONResponse(content=body.model_dump(), headers=NO_STORE)


@router.get("/userinfo", response_model=UserInfo)
async def userinfo(
    request: Request,
    access_tokens: AccessTokenManager = Depends(get_access_token_manager),
    users: UserService = Depends(get_user_service),
):
    token_value = extract_bearer_token(request.headers.get("Authorization"))
    if token_value is None:
        raise InvalidToken(reason="missing bearer")
    info = await access_tokens.validate(token_value)
    user = await users.get_user(info.user_id)
    if user is None:
        raise InvalidToken(reason="token owner no longer exists")
    return UserInfo(sub=user.user_id, username=user.username)


@router.post("/revoke")
async def revoke(
    token: str = Form(""),
    access_tokens: AccessTokenManager = Depends(get_access_token_manager),
):
    """Idempotent revocation: unknown tokens are not an error."""
    await access_tokens.revoke(token)
    return {"message": "Token revoked"}
