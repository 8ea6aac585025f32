"""Error taxonomy and the JSON error envelope.

Learn: handlers and services raise AppError subclasses instead of
HTTPException. Each carries a stable machine-readable `code`; the
handlers registered here turn them into `{error, code, ...}` bodies.

Store failures never leak: IntegrityError becomes 409 DUPLICATE_ENTRY
(a unique race that slipped past a pre-check), anything else becomes a
generic 500 with the full traceback in the server log only.
"""

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = structlog.get_logger()


class AppError(Exception):
    """Base for every error that maps to a structured HTTP response."""

    status_code = 500
    code = "INTERNAL_ERROR"
    message = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        **extra: Any,
    ):
        self.message = message or self.message
        self.code = code or self.code
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, **self.extra}


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Validation failed"


class BadRequestError(AppError):
    status_code = 400
    code = "BAD_REQUEST"
    message = "Bad request"


class AuthenticationError(AppError):
    status_code = 401
    code = "TOKEN_INVALID"
    message = "Authentication required"


class AuthorizationError(AppError):
    status_code = 403
    code = "INSUFFICIENT_PERMISSIONS"
    message = "Insufficient permissions"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    code = "DUPLICATE_ENTRY"
    message = "Resource already exists"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMITED"
    message = "Too many requests. Try again later."


class InternalError(AppError):
    pass


def error_response(exc: AppError, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_dict(), headers=headers
    )


def _validation_details(exc: RequestValidationError) -> list[dict]:
    details = []
    for err in exc.errors():
        # loc is ("body", "email") / ("query", "page") / ("path", "id")
        field = ".".join(str(part) for part in err.get("loc", ()))
        details.append(
            {"field": field, "message": err.get("msg", ""), "code": err.get("type", "")}
        )
    return details


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = None
    if exc.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return error_response(exc, headers=headers)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return error_response(ValidationError(details=_validation_details(exc)))


async def _integrity_error_handler(
    request: Request, exc: IntegrityError
) -> JSONResponse:
    logger.warning("request.integrity_error", path=request.url.path, error=str(exc.orig))
    return error_response(ConflictError())


async def _store_error_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    logger.exception("request.store_error", path=request.url.path)
    return error_response(InternalError())


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request.unhandled_error", path=request.url.path)
    return error_response(InternalError())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(IntegrityError, _integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, _store_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
