"""FastAPI authentication dependencies.

Two kinds of callers reach this service: end users holding an access token,
and machines (scheduler, payment gateway, other backend services) holding a
shared secret.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass

import jwt
from fastapi import Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from eduhub.auth.jwt import verify_token
from eduhub.config import get_settings
from eduhub.errors import Forbidden, Unauthorized

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    """Authenticated identity of the current request."""

    user_id: str | None
    is_service: bool = False

    def ensure_can_act_for(self, user_id: str) -> None:
        """Users may only act on their own records; services may act for anyone."""
        if self.is_service:
            return
        if self.user_id != user_id:
            raise Forbidden("Cannot act on behalf of another user")


def _secret_matches(presented: str, expected: str) -> bool:
    return bool(expected) and hmac.compare_digest(presented.encode(), expected.encode())


def _require_credentials(credentials: HTTPAuthorizationCredentials | None) -> str:
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Missing bearer token")
    return credentials.credentials


def _token_subject(token: str) -> str:
    try:
        payload = verify_token(token, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise Unauthorized(str(e)) from e
    return str(payload["sub"])


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> str:
    """Verify the access token and return the user id it was issued to."""
    return _token_subject(_require_credentials(credentials))


async def get_caller(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> Caller:
    """Accept either the internal service secret or a user access token."""
    token = _require_credentials(credentials)
    if _secret_matches(token, get_settings().service_api_secret):
        return Caller(user_id=None, is_service=True)
    return Caller(user_id=_token_subject(token))


async def require_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> None:
    """Scheduler endpoints: `Authorization: Bearer <cron secret>`."""
    token = _require_credentials(credentials)
    if not _secret_matches(token, get_settings().cron_secret):
        raise Unauthorized("Invalid cron secret")


async def require_webhook_secret(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> None:
    """Payment gateway callbacks: `Authorization: Bearer <webhook secret>`."""
    token = _require_credentials(credentials)
    if not _secret_matches(token, get_settings().payment_webhook_secret):
        raise Unauthorized("Invalid webhook secret")
