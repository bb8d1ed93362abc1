import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from kioku.core.logging import get_api_logger

api_logger = get_api_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
UNTRACED_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with a correlation id and logs its status and duration.

    A client-supplied ``X-Correlation-ID`` is reused. The id is stored on
    ``request.state`` so the error handlers put the same one in the body.
    """

    async def dispatch(self, request: Request, call_next):
        if request.url.path in UNTRACED_PATHS:
            return await call_next(request)

        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers[CORRELATION_HEADER] = correlation_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"
        api_logger.log_response(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            response_time_ms=elapsed_ms,
            correlation_id=correlation_id
        )
        return response
