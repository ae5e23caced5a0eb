"""
Request Middleware and Exception Handlers
==========================================

- RequestContextMiddleware: binds a request id to the log context and
  reports processing time in ``X-Process-Time``
- exception_handler: SwitchyardError → JSON body with its status code
- generic_exception_handler: anything else → 500
"""

import time
import uuid

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from switchyard.core.exceptions import SwitchyardError
from switchyard.infra.telemetry import clear_request_context, get_logger, set_request_context

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        set_request_context(request_id=request_id)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{elapsed_ms:.2f}ms"
        logger.debug(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(elapsed_ms, 2),
        )
        return response

async def exception_handler(request: Request, exc: SwitchyardError) -> JSONResponse:
    logger.warning(
        "request_failed",
        path=request.url.path,
        error_code=exc.error_code,
        detail=exc.detail,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", exc=exc, path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "detail": "Internal server error"},
    )
