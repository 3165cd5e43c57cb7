"""Session, auth gate and the connector's process-wide context object."""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from npmx_connector.core.exceptions import AuthorizationError, InvalidTokenError
from npmx_connector.core.executor import CommandExecutor
from npmx_connector.core.scheduler import ExecutionScheduler, ExecutionSummary
from npmx_connector.core.store import OperationStore

LOGGER = logging.getLogger(__name__)
SECURITY_LOGGER = logging.getLogger("npmx_connector.security")

BEARER_PREFIX = "Bearer "


def generate_token() -> str:
    return secrets.token_hex(16)


@dataclass
class Session:
    token: str
    connected_at: Optional[int] = None
    identity: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"identity": self.identity, "connectedAt": self.connected_at}


class AuthGate:
    """Compares presented credentials against the minted session token."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def matches(self, candidate: Any) -> bool:
        if not isinstance(candidate, str) or not candidate:
            return False
        return secrets.compare_digest(
            candidate.encode("utf-8"), self._session.token.encode("utf-8")
        )

    def require_bearer(self, header: Optional[str]) -> None:
        token = (header or "").strip().removeprefix(BEARER_PREFIX).strip()
        if not self.matches(token):
            SECURITY_LOGGER.warning("Rejected request with missing or invalid bearer token")
            raise AuthorizationError("Unauthorized")

    def require_handshake(self, token: Any) -> None:
        if not self.matches(token):
            SECURITY_LOGGER.warning("Rejected connect attempt with invalid token")
            raise InvalidTokenError("Invalid token")


class ConnectorState:
    """Everything one connector process owns: session, store and executor."""

    def __init__(
        self,
        executor: CommandExecutor,
        *,
        token: Optional[str] = None,
        store: Optional[OperationStore] = None,
    ) -> None:
        self.session = Session(token=token or generate_token())
        self.gate = AuthGate(self.session)
        self.store = store or OperationStore()
        self.executor = executor
        self.scheduler = ExecutionScheduler(self.store, executor)

    async def connect(self, token: Any) -> Session:
        self.gate.require_handshake(token)
        identity = await self.executor.whoami()
        self.session.connected_at = int(time.time() * 1000)
        self.session.identity = identity
        LOGGER.info("Browser session connected", extra={"identity": identity})
        return self.session

    async def execute(self, otp: Optional[str] = None) -> ExecutionSummary:
        return await self.scheduler.run(otp)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "identity": self.session.identity,
            "operations": [op.to_dict() for op in self.store.list()],
        }


__all__ = [
    "AuthGate",
    "BEARER_PREFIX",
    "ConnectorState",
    "Session",
    "generate_token",
]
