"""FastAPI dependencies shared by the connector routers."""

from __future__ import annotations

from fastapi import Depends, Request

from npmx_connector.core.session import ConnectorState


def get_connector(request: Request) -> ConnectorState:
    return request.app.state.connector


def require_token(
    request: Request, connector: ConnectorState = Depends(get_connector)
) -> ConnectorState:
    """Reject the request unless it carries the session's bearer token."""
    connector.gate.require_bearer(request.headers.get("Authorization"))
    return connector


__all__ = ["get_connector", "require_token"]
