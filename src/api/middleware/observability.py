"""Request logging middleware."""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    ASGI middleware for HTTP request/response logging.

    Logs method, path, status_code, duration_ms and request_id for every
    request. Query strings are not logged (webhook verification carries the
    verify token there).

    Usage:
        app.add_middleware(RequestLoggingMiddleware)
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = getattr(request.state, "request_id", None)
        start = time.perf_counter()

        response: Response = await call_next(request)

        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "http_request: method=%s, path=%s, status=%s, duration_ms=%s, request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response
