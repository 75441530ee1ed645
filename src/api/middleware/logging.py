"""
Request Logging Middleware

Binds a short request id (and the caller's IP) to the structlog context for the
duration of each request, logs completion with status and timing, and echoes
the id back in ``X-Request-ID``. Health checks are logged at debug level so
load balancer probes do not flood the log.
"""

import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from src.utils.logging_config import bind_context, clear_context, get_logger

logger = get_logger(__name__)

QUIET_PATHS = frozenset({"/api/health"})


def _client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",", maxsplit=1)[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else "unknown"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Request tracing for every HTTP request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())[:8]
        path = request.url.path
        bind_context(request_id=request_id, client_ip=_client_ip(request))

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

            if path in QUIET_PATHS:
                log_method = logger.debug
            elif response.status_code < 400:
                log_method = logger.info
            else:
                log_method = logger.warning
            log_method(
                "Request completed",
                method=request.method,
                path=path,
                query=str(request.url.query) or None,
                status_code=response.status_code,
                duration_ms=duration_ms,
            )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            logger.exception(
                "Request failed with exception",
                method=request.method,
                path=path,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                error=str(e),
            )
            raise

        finally:
            # Prevent context leaking into the next request on this worker
            clear_context()
