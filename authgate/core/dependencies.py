"""
Common dependencies for the credential service routes

Services are built once at startup and stored on ``app.state``; these
accessors hand them to route functions.
"""

from fastapi import Request

from authgate.core.errors import TokenValidationError
from authgate.models.tokens import Claims
from authgate.services.access_tokens import AccessTokenManager
from authgate.services.authorization_codes import AuthorizationCodeManager
from authgate.services.client_registry import ClientRegistry
from authgate.services.token_manager import TokenManager
from authgate.services.user_management import UserService


def get_token_manager(request: Request) -> TokenManager:
    return request.app.state.token_manager


def get_code_manager(request: Request) -> AuthorizationCodeManager:
    return request.app.state.code_manager


def get_access_token_manager(request: Request) -> AccessTokenManager:
    return request.app.state.access_token_manager


def get_client_registry(request: Request) -> ClientRegistry:
    return request.app.state.client_registry


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


async def get_current_claims(request: Request) -> Claims:
    """Claims attached by the JWT middleware.

    Routes outside the protected prefixes never have claims, so reaching one
    without them is treated as an unauthenticated request.
    """
    claims = getattr(request.state, "claims", None)
    if claims is None:
        raise TokenValidationError(reason="no claims on request")
    return claims
