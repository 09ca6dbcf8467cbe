"""
Request/response models for the HTTP layer
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from authgate.models.tokens import Claims


class GenerateTokenRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    extra: Dict[str, Any] = Field(default_factory=dict)


class ValidateTokenRequest(BaseModel):
    token: str


class ValidateTokenResponse(BaseModel):
    valid: bool = True
    claims: Claims


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class RevokeTokenRequest(BaseModel):
    token: str
    refresh_token: Optional[str] = None


class RevokeTokenResponse(BaseModel):
    message: str
    jti: Optional[str] = None


class OAuthTokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    scope: Optional[str] = None


class UserInfo(BaseModel):
    sub: str
    username: str


class ProtectedProfile(BaseModel):
    message: str = "Access granted"
    user_id: str
    email: str
    token_issued_at: int
    token_expires_at: int
