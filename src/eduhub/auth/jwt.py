"""HS256 access tokens shared with the auth service.

The auth service mints tokens; this service only verifies them against the
shared secret and issuer. `create_access_token` is for tooling and tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from eduhub.config import get_settings

ACCESS_TOKEN = "access"
_LEEWAY_SECONDS = 10
_REQUIRED_CLAIMS = ["sub", "exp", "iss"]


def create_access_token(user_id: str, email: str | None = None, expires_in: timedelta | None = None) -> str:
    """Sign an access token for `user_id` with the configured secret."""
    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_in or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    claims: dict[str, Any] = {
        "sub": user_id,
        "iss": settings.jwt_issuer,
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "type": ACCESS_TOKEN,
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str, expected_type: str = ACCESS_TOKEN) -> dict[str, Any]:
    """Decode `token`, checking signature, expiry, issuer and token type.

    Raises:
        jwt.InvalidTokenError: On any failed check.
    """
    settings = get_settings()
    claims: dict[str, Any] = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
        leeway=_LEEWAY_SECONDS,
        options={"require": _REQUIRED_CLAIMS},
    )
    if claims.get("type") != expected_type:
        msg = f"Not an {expected_type} token"
        raise jwt.InvalidTokenError(msg)
    return claims
