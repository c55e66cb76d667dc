"""Middleware for logging HTTP requests and responses."""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from common.core.request_context import RequestContext
from common.utils.utils import get_logger

logger = get_logger()

# Polled by load balancers and the dashboard, logged at debug only
_QUIET_PATHS = ("/health", "/api/v1/health", "/sales")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs the start, completion or failure of every request with its timing.

    Request bodies are not logged: checkout and approval payloads carry payment references.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        context = RequestContext.get_or_none()
        req_logger = logger.bind(request_id=context.request_id if context else None)

        method = request.method
        path = request.url.path
        quiet = path in _QUIET_PATHS
        log_data = {
            "type": "request_started",
            "client_ip": request.client.host if request.client else "unknown",
            "method": method,
            "path": path,
        }
        if quiet:
            req_logger.debug(f"Request started: {method} {path}", **log_data)
        else:
            req_logger.info(f"Request started: {method} {path}", **log_data)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            req_logger.error(
                f"Request failed: {method} {path}",
                type="request_failed",
                method=method,
                path=path,
                error=str(e),
                process_time_ms=int((time.perf_counter() - start_time) * 1000),
                exc_info=True,
            )
            raise

        response_log_data = {
            "type": "request_completed",
            "method": method,
            "path": path,
            "status_code": response.status_code,
            "process_time_ms": int((time.perf_counter() - start_time) * 1000),
        }
        if response.status_code >= 500:
            req_logger.error(f"Request completed: {method} {path} - {response.status_code}", **response_log_data)
        elif response.status_code >= 400:
            req_logger.warning(f"Request completed: {method} {path} - {response.status_code}", **response_log_data)
        elif quiet:
            req_logger.debug(f"Request completed: {method} {path} - {response.status_code}", **response_log_data)
        else:
            req_logger.info(f"Request completed: {method} {path} - {response.status_code}", **response_log_data)
        return response
