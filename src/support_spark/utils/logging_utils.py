"""
Structured logging helpers shared by the API layer and the core services.

- `log_security_event`: authentication failures, rate-limit hits, authorization denials
  and trust changes. Raw tokens and secrets must never be passed in `details`.
- `log_application_lifecycle`: startup and shutdown phases.
- `log_error_with_context`: unexpected errors with the operation that raised them.
- `RequestLoggingMiddleware`: one line per request with status and duration.
"""

import time
from typing import Any, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from support_spark.managers.logging_manager import get_logger

security_logger = get_logger("security", prefix="[SECURITY]")
lifecycle_logger = get_logger("lifecycle", prefix="[LIFECYCLE]")
error_logger = get_logger("errors", prefix="[ERROR]")
request_logger = get_logger("requests", prefix="[REQUEST]")


def log_security_event(
    event_type: str,
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    success: bool = True,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log a security-relevant event.

    Successful events are logged at INFO, failures at WARNING.
    """
    level = "info" if success else "warning"
    getattr(security_logger, level)(
        "event=%s user=%s ip=%s success=%s details=%s",
        event_type,
        user_id or "anonymous",
        ip_address or "unknown",
        success,
        details or {},
    )


def log_application_lifecycle(event: str, details: Optional[Dict[str, Any]] = None) -> None:
    """Log an application lifecycle phase such as `startup_initiated`."""
    lifecycle_logger.info("%s %s", event, details or {})


def log_error_with_context(error: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
    """Log an exception together with the operation context it occurred in."""
    error_logger.error("%s: %s context=%s", type(error).__name__, error, context or {}, exc_info=error)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status code and duration for every request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start
            request_logger.error("%s %s failed after %.3fs: %s", request.method, request.url.path, duration, e)
            raise
        duration = time.perf_counter() - start
        request_logger.info(
            "%s %s -> %d in %.3fs", request.method, request.url.path, response.status_code, duration
        )
        return response
