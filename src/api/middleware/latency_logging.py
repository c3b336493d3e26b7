"""Request latency logging middleware."""

import logging
import time
from typing import Callable

from fastapi import Request, Response

logger = logging.getLogger(__name__)

# Thresholds for log levels (in milliseconds)
SLOW_REQUEST_THRESHOLD_MS = 1000
VERY_SLOW_REQUEST_THRESHOLD_MS = 3000

HEALTH_PATHS = frozenset({"/health", "/health/ready"})


def log_level_for(status_code: int, latency_ms: float, error: bool = False) -> int:
    """Pick a log level from the response status and latency."""
    if error or status_code >= 500 or latency_ms > VERY_SLOW_REQUEST_THRESHOLD_MS:
        return logging.ERROR
    if latency_ms > SLOW_REQUEST_THRESHOLD_MS or status_code >= 400:
        return logging.WARNING
    return logging.INFO


async def latency_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Log one line per request with status and latency.

    Health checks are only logged at debug level.
    """
    start_time = time.perf_counter()
    method = request.method
    path = request.url.path

    response = None
    error_occurred = False
    try:
        response = await call_next(request)
        return response
    except Exception:
        error_occurred = True
        raise
    finally:
        latency_ms = (time.perf_counter() - start_time) * 1000
        status_code = response.status_code if response else 500
        extra = {
            "method": method,
            "path": path,
            "status_code": status_code,
            "latency_ms": round(latency_ms, 2),
        }

        if path in HEALTH_PATHS:
            logger.debug("%s %s - %d - %.2fms", method, path, status_code, latency_ms, extra=extra)
        else:
            level = log_level_for(status_code, latency_ms, error_occurred)
            prefix = "SLOW REQUEST: " if latency_ms > SLOW_REQUEST_THRESHOLD_MS else ""
            logger.log(level, "%s%s %s - %d - %.2fms", prefix, method, path, status_code, latency_ms, extra=extra)
