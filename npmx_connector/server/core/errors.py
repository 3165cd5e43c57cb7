from __future__ import annotations

import logging
import traceback
import uuid
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from npmx_connector.core.exceptions import ConnectorError
from npmx_connector.server.core.envelope import failure

_log = logging.getLogger("npmx_connector.errors")


def _request_id(request: Request) -> Optional[str]:
    state_rid = getattr(request.state, "request_id", None)
    header_rid = request.headers.get("X-Request-ID")
    return state_rid or header_rid or None


def _error_response(
    request: Request,
    *,
    status: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    rid = _request_id(request)
    body = failure(message, code=code, details=details, request_id=rid)
    response = JSONResponse(jsonable_encoder(body), status_code=status)
    if rid:
        response.headers["X-Request-ID"] = rid
    return response


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ConnectorError)
    async def _connector_exc(request: Request, exc: ConnectorError):
        if exc.status_code >= 500:
            _log.error("connector error: %s", exc.message)
        else:
            _log.info(
                "request rejected",
                extra={"code": exc.error_code, "status": exc.status_code},
            )
        return _error_response(
            request,
            status=exc.status_code,
            code=exc.error_code,
            message=exc.message,
            details=exc.details,
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_exc(request: Request, exc: StarletteHTTPException):
        detail = exc.detail
        message = str(detail) if detail else "Request failed"
        details = detail if isinstance(detail, (dict, list)) else None
        return _error_response(
            request,
            status=exc.status_code,
            code=f"http_{exc.status_code}",
            message=message,
            details=details,
        )

    @app.exception_handler(RequestValidationError)
    async def _val_exc(request: Request, exc: RequestValidationError):
        _log.debug("validation error: %s", exc)
        return _error_response(
            request,
            status=422,
            code="validation_error",
            message="Request validation failed",
            details=exc.errors(),
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        err_id = uuid.uuid4().hex
        tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        _log.error("Unhandled exception [%s]: %s", err_id, tb)
        return _error_response(
            request,
            status=500,
            code="internal_error",
            message="Internal server error",
            details={"error_id": err_id},
        )
