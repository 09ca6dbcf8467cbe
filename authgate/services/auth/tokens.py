"""
JWT codec: compact HS256 encoding and strict verification of access tokens

Verification order is fixed: structural parse, then signature, then expiry.
A forged token is therefore rejected before its expiry is even looked at,
and a well-signed but expired token is reported as expired rather than
forged (the distinction is for logs; clients only ever see "invalid_token").
"""

import re
from datetime import datetime
from typing import Optional

import jwt
from jwt.utils import base64url_decode, base64url_encode
from pydantic import ValidationError

from authgate.core.config import ALGORITHM
from authgate.core.errors import MalformedToken, SignatureInvalid, TokenExpired
from authgate.models.tokens import Claims
from authgate.utils.date_utils import get_current_utc, to_timestamp

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")

# Expiry is checked against the injected clock below, not PyJWT's wall clock.
# aud and iss are opaque custom claims here and must round-trip unchecked.
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
    "require": ["sub", "iat", "exp", "jti"],
}


def encode(claims: Claims, secret: str) -> str:
    """Sign *claims* into a compact JWT.

    Header and payload are serialised compactly with a stable key order, so
    the same claims always produce a byte-identical token.
    """
    return jwt.encode(claims.to_payload(), secret, algorithm=ALGORITHM)


def _check_structure(token: str) -> None:
    if not isinstance(token, str) or not token:
        raise MalformedToken(reason="empty or non-string token")
    segments = token.split(".")
    if len(segments) != 3:
        raise MalformedToken(reason=f"expected 3 segments, got {len(segments)}")
    for segment in segments:
        if not _SEGMENT_RE.match(segment):
            raise MalformedToken(reason="segment is not base64url")
        # Reject non-canonical encodings (stray trailing bits would otherwise
        # decode to the same bytes and let a mutated token verify)
        try:
            canonical = base64url_encode(base64url_decode(segment)).decode("ascii")
        except (ValueError, TypeError):
            raise MalformedToken(reason="segment does not decode") from None
        if canonical != segment:
            raise MalformedToken(reason="non-canonical base64url segment")


def decode_and_verify(
    token: str,
    secret: str,
    *,
    now: Optional[datetime] = None,
) -> Claims:
    """Verify *token* and return its claims.

    Raises:
        MalformedToken: structurally invalid token or claims of the wrong shape.
        SignatureInvalid: signature does not match the signing input.
        TokenExpired: ``now >= exp``.
    """
    _check_structure(token)

    try:
        payload = jwt.decode(
            token, secret, algorithms=[ALGORITHM], options=_DECODE_OPTIONS
        )
    except jwt.InvalidSignatureError:
        raise SignatureInvalid(reason="signature mismatch") from None
    except jwt.InvalidTokenError as e:
        raise MalformedToken(reason=f"{type(e).__name__}: {e}") from None

    try:
        claims = Claims.from_payload(payload)
    except ValidationError as e:
        raise MalformedToken(reason=f"claims rejected ({e.error_count()} errors)") from None

    current = to_timestamp(now or get_current_utc())
    if current >= claims.exp:
        raise TokenExpired(reason=f"expired {current - claims.exp}s ago")

    return claims
