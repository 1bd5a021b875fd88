"""
API Middleware

Request tracing and error translation.
"""

import time
from collections.abc import Callable
from uuid import uuid4

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from planloop.core.exceptions import (
    CheckpointConflictError,
    CheckpointNotFoundError,
    ConfigurationError,
    InvalidStateError,
    PlanloopError,
    ToolNotFoundError,
    ToolValidationError,
)
from planloop.observability.logging import StructuredLogger, get_logger

logger = get_logger("planloop.api")

_STATUS_CODES: list[tuple[type[PlanloopError], int]] = [
    (CheckpointNotFoundError, 404),
    (ToolNotFoundError, 404),
    (CheckpointConflictError, 409),
    (InvalidStateError, 409),
    (ToolValidationError, 422),
    (ConfigurationError, 503),
]


def status_code_for(error: PlanloopError) -> int:
    for error_type, status in _STATUS_CODES:
        if isinstance(error, error_type):
            return status
    return 500


async def planloop_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Translate PlanloopError into a JSON error body."""
    assert isinstance(exc, PlanloopError)
    status = status_code_for(exc)
    if status >= 500:
        logger.error("Request failed", error=exc, path=request.url.path)
    return JSONResponse(status_code=status, content=exc.to_dict())


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Adds request IDs to requests, responses and log records.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        request_id = request.headers.get("X-Request-Id", str(uuid4()))
        request.state.request_id = request_id

        start_time = time.perf_counter()

        with StructuredLogger.context(request_id=request_id):
            response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        return response
