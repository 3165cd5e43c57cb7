from __future__ import annotations

from typing import Any, Optional


class ConnectorError(Exception):
    """Base error carrying the HTTP status and machine-readable code."""

    status_code = 500
    error_code = "connector_error"

    def __init__(self, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class AuthorizationError(ConnectorError):
    status_code = 401
    error_code = "unauthorized"


class InvalidTokenError(AuthorizationError):
    error_code = "invalid_token"


class OperationNotFound(ConnectorError):
    status_code = 404
    error_code = "operation_not_found"

    def __init__(self, op_id: str) -> None:
        super().__init__("Operation not found", details={"id": op_id})
        self.op_id = op_id


class InvalidTransition(ConnectorError):
    status_code = 400
    error_code = "invalid_transition"


class InvalidParams(ConnectorError):
    status_code = 400
    error_code = "invalid_params"


__all__ = [
    "AuthorizationError",
    "ConnectorError",
    "InvalidParams",
    "InvalidTokenError",
    "InvalidTransition",
    "OperationNotFound",
]
