"""Exception handlers: every error leaves the API as ``{"detail": ...}`` JSON."""

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from eduhub.errors import EduHubError, PersistenceFailure

logger = structlog.get_logger()


def _error(status_code: int, detail: object, **extra: object) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, **extra})


async def _service_error(request: Request, exc: EduHubError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("service_error", path=request.url.path, error=exc.detail, error_type=type(exc).__name__)
    return _error(exc.status_code, exc.detail)


async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    response = _error(exc.status_code, exc.detail)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    # Bad input is a 400 here, not FastAPI's default 422.
    return _error(400, "Validation error", errors=jsonable_encoder(exc.errors()))


async def _database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("database_error", path=request.url.path, error_type=type(exc).__name__, exc_info=exc)
    return _error(PersistenceFailure.status_code, PersistenceFailure.default_detail)


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, method=request.method, exc_info=exc)
    return _error(500, "Internal server error")


def setup_error_handlers(app: FastAPI) -> None:
    """Register the global exception handlers."""
    app.add_exception_handler(EduHubError, _service_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _database_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error)
