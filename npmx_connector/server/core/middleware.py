from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from npmx_connector.logging_config import reset_request_id, set_request_id

_log = logging.getLogger("npmx_connector.request")

REQUEST_ID_HEADER = "X-Request-ID"
PROCESS_TIME_HEADER = "X-Process-Time"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, time it and log one line per call.

    The id comes from the caller's ``X-Request-ID`` header when present and is
    visible to log records emitted while the request is handled.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = rid
        token = set_request_id(rid)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed = time.perf_counter() - started
            _log.info(
                "%s %s -> %d",
                request.method,
                request.url.path,
                response.status_code,
                extra={"duration_ms": round(elapsed * 1000, 3)},
            )
        finally:
            reset_request_id(token)
        response.headers[REQUEST_ID_HEADER] = rid
        response.headers[PROCESS_TIME_HEADER] = f"{elapsed:.6f}s"
        return response


__all__ = ["RequestContextMiddleware"]
