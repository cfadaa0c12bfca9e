"""Service exceptions.

Each error carries the HTTP status it is rendered with by the global
error handler. Services raise these; routers never build error responses.
"""

from __future__ import annotations


class EduHubError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Unauthorized(EduHubError):
    status_code = 401
    default_detail = "Unauthorized"


class Forbidden(EduHubError):
    status_code = 403
    default_detail = "Forbidden"


class NotFound(EduHubError):
    status_code = 404
    default_detail = "Not found"


class InvalidInput(EduHubError):
    status_code = 400
    default_detail = "Invalid input"


class ConflictRetryable(EduHubError):
    """A concurrent writer won a uniqueness race. Retry through the update path."""

    status_code = 409
    default_detail = "Conflicting concurrent write"


class PersistenceFailure(EduHubError):
    status_code = 500
    default_detail = "Failed to persist changes"
