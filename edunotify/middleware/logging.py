"""Request logging middleware."""

import logging
import time
from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Polled every few seconds by the load balancer
QUIET_PATHS = frozenset({"/health", "/api/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per request with its id, status and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Reuse the caller's id so the app and the SMS service share a trace
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        level = logging.DEBUG if request.url.path in QUIET_PATHS else logging.INFO

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"{request.method} {request.url.path} failed: {e}",
                extra={
                    "request_id": request_id,
                    "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                },
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.log(
            level,
            f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms}ms)",
            extra={
                "request_id": request_id,
                "client_ip": request.client.host if request.client else None,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
