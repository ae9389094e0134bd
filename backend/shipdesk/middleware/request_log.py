import logging
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from shipdesk.core.logging_config import session_id_ctx_var

logger = logging.getLogger("shipdesk.request")

REQUEST_ID_HEADER = "X-Request-ID"


def _backend_mode_name(request: Request) -> str | None:
    mode = getattr(request.app.state, "backend_mode", None)
    return getattr(mode, "name", None)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Reuse or mint a request id, echo it back, and log one line per response.

    The id doubles as the logging session id for everything the request
    triggers, so tracking lookups can be correlated with their request line.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip()[:64] or uuid.uuid4().hex
        token = session_id_ctx_var.set(request_id)
        request.state.request_id = request_id
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "request",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000),
                    "backend_mode": _backend_mode_name(request),
                },
            )
            return response
        finally:
            session_id_ctx_var.reset(token)
