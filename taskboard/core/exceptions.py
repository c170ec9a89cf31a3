from typing import Any

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskboard.core.config import get_settings
from taskboard.core.responses import error_body

logger = structlog.get_logger(__name__)


class AppError(Exception):
    """Base error rendered as an error envelope."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: list[dict[str, str]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class BadRequestError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT


class CacheUnavailableError(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Cache service unavailable", **kwargs):
        super().__init__(message, **kwargs)


class InternalError(AppError):
    """Unexpected failure while serving a route; the cause stays attached."""


def _field_name(loc: tuple[Any, ...]) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts) or "body"


def _clean_message(msg: str) -> str:
    # pydantic prefixes messages raised from custom validators
    return msg.removeprefix("Value error, ")


def validation_details(errors) -> list[dict[str, str]]:
    return [
        {"field": _field_name(tuple(err.get("loc", ()))), "message": _clean_message(err["msg"])}
        for err in errors
    ]


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    extra = {}
    if isinstance(exc, InternalError) and exc.__cause__ is not None:
        if get_settings().is_development:
            extra["detail"] = repr(exc.__cause__)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.details, **extra),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = validation_details(exc.errors())
    logger.info("Request validation failed", path=request.url.path, errors=len(details))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Validation failed", details),
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        content = error_body("Route not found", path=request.url.path)
    else:
        content = error_body(str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None)
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", path=request.url.path)
    extra = {"detail": repr(exc)} if get_settings().is_development else {}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Something went wrong!", **extra),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
