"""
Results handed back by the authorization-code and opaque-token managers
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AuthorizationGrant(BaseModel):
    """What a successfully consumed authorization code was bound to."""

    user_id: str
    client_id: str
    scope: Optional[str] = None


class AccessTokenInfo(BaseModel):
    """Resolved owner of a valid opaque access token."""

    user_id: str
    client_id: str
    scope: Optional[str] = None
    expires_at: datetime
