import time
import uuid
from typing import Callable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from ..factory import get_data_sanitizer
from .context import RequestContextLogger


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Bind a request id and request metadata to every log line of a request.

    Logs the incoming request and its completion (status and duration),
    and echoes the request id back in the `X-Request-Id` response header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())[:8]
        sanitizer = await get_data_sanitizer()

        context = {
            "client_ip": self._get_client_ip(request),
            "method": request.method,
            "path": request.url.path,
        }

        with RequestContextLogger(request_id=request_id, **context):
            logger.info(f"🔄 Incoming {request.method} request to {request.url.path}")

            if request.url.query:
                logger.debug(
                    f"🔍 Query parameters: {sanitizer.sanitize_for_logging('?' + request.url.query)}"
                )

            start = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(
                    f"💥 Request failed: {type(e).__name__}: "
                    f"{sanitizer.sanitize_exception_for_logging(e)}"
                )
                raise

            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.info(
                f"✅ Completed {request.method} {request.url.path} "
                f"-> {response.status_code} in {elapsed_ms:.1f}ms"
            )
            response.headers["X-Request-Id"] = request_id
            return response

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"
