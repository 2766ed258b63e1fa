"""
Request logging middleware.
"""
import logging
import time

from fastapi import Request

logger = logging.getLogger("app.requests")


async def request_logging_middleware(request: Request, call_next):
    """
    Log method, path, status code and duration of every request.

    The response time is also returned in the ``X-Response-Time`` header.
    """
    start_time = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start_time) * 1000

    response.headers["X-Response-Time"] = f"{elapsed_ms:.1f}ms"
    logger.info(
        "%s %s -> %s (%.1fms)",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response
