import logging
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from backoffice.core.logging_config import request_id_ctx_var

logger = logging.getLogger("backoffice.request")

_MAX_INBOUND_ID_LENGTH = 128


def _request_id_from(request: Request) -> str:
    inbound = (request.headers.get("X-Request-ID") or "").strip()
    if inbound and len(inbound) <= _MAX_INBOUND_ID_LENGTH:
        return inbound
    return str(uuid.uuid4())


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = _request_id_from(request)
        token = request_id_ctx_var.set(request_id)
        start = time.perf_counter()
        request.state.request_id = request_id
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = int((time.perf_counter() - start) * 1000)
            if response is not None:
                response.headers["X-Request-ID"] = request_id
                level = logging.WARNING if response.status_code >= 500 else logging.INFO
                logger.log(
                    level,
                    "request",
                    extra={
                        "path": request.url.path,
                        "method": request.method,
                        "status_code": response.status_code,
                        "duration_ms": duration_ms,
                    },
                )
            request_id_ctx_var.reset(token)
