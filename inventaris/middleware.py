"""Request logging middleware."""
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log start, end and duration of every request under a request id."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = uuid.uuid4().hex[:12]
        request.state.request_id = request_id
        start_time = time.perf_counter()
        logger.info(f"RID:{request_id} START {request.method} {request.url.path}")

        try:
            response = await call_next(request)
        except Exception as exc:
            duration = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"RID:{request_id} FAILED {request.method} {request.url.path} "
                f"Error:{exc} Duration:{duration:.2f}ms"
            )
            raise

        duration = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"RID:{request_id} END {request.method} {request.url.path} "
            f"Status:{response.status_code} Duration:{duration:.2f}ms"
        )
        response.headers["X-Request-ID"] = request_id
        return response
