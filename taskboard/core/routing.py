from typing import Callable

import structlog
from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.routing import APIRoute
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskboard.core.exceptions import AppError, InternalError

logger = structlog.get_logger(__name__)


class EnvelopeRoute(APIRoute):
    """Route that turns unexpected failures into a per-operation 500.

    The message is derived from the endpoint name, so ``create_user``
    fails with "Failed to create user".
    """

    def get_route_handler(self) -> Callable:
        handler = super().get_route_handler()
        failure = "Failed to " + self.name.replace("_", " ")

        async def route_handler(request: Request) -> Response:
            try:
                return await handler(request)
            except (AppError, StarletteHTTPException, RequestValidationError):
                raise
            except Exception as exc:
                logger.exception(failure, method=request.method, path=request.url.path)
                raise InternalError(failure) from exc

        return route_handler
