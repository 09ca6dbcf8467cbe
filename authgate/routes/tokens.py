"""
JWT lifecycle endpoints: generate, validate, refresh, revoke
"""

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from authgate.core.dependencies import get_current_claims, get_token_manager
from authgate.core.errors import TokenValidationError
from authgate.models.auth import (
    GenerateTokenRequest,
    ProtectedProfile,
    RefreshTokenRequest,
    RevokeTokenRequest,
    RevokeTokenResponse,
    ValidateTokenRequest,
    ValidateTokenResponse,
)
from authgate.models.tokens import Claims, TokenPair
from authgate.services.token_manager import TokenManager

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["tokens"])


@router.post("/token", response_model=TokenPair)
async def generate_token(
    body: GenerateTokenRequest,
    tokens: TokenManager = Depends(get_token_manager),
):
    return await tokens.generate(body.user_id, body.email, extra=body.extra or None)


@router.post("/validate", response_model=ValidateTokenResponse)
async def validate_token(
    body: ValidateTokenRequest,
    tokens: TokenManager = Depends(get_token_manager),
):
    try:
        claims = await tokens.validate(body.token)
    except TokenValidationError as e:
        logger.info("Token validation failed", error_type=type(e).__name__, reason=e.reason)
        return JSONResponse(
            status_code=401,
            content={"valid": False, **TokenValidationError().to_payload()},
            headers={"WWW-Authenticate": 'Bearer error="invalid_token"'},
        )
    return ValidateTokenResponse(claims=claims)


@router.post("/refresh", response_model=TokenPair)
async def refresh_token(
    body: RefreshTokenRequest,
    tokens: TokenManager = Depends(get_token_manager),
):
    return await tokens.refresh(body.refresh_token)


@router.post("/revoke", response_model=RevokeTokenResponse)
async def revoke_token(
    body: RevokeTokenRequest,
    tokens: TokenManager = Depends(get_token_manager),
):
    jti = await tokens.revoke(body.token)
    if body.refresh_token:
        await tokens.revoke_refresh(body.refresh_token)
    if jti is None:
        return RevokeTokenResponse(message="Token already expired")
    return RevokeTokenResponse(message="Token revoked successfully", jti=jti)


@router.get("/protected", response_model=ProtectedProfile)
async def protected_resource(claims: Claims = Depends(get_current_claims)):
    return ProtectedProfile(
        user_id=claims.sub,
        email=claims.email,
        token_issued_at=claims.iat,
        token_expires_at=claims.exp,
    )
