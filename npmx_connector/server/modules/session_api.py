from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from npmx_connector import __version__
from npmx_connector.core.session import ConnectorState
from npmx_connector.server.core.envelope import success
from npmx_connector.server.deps import get_connector, require_token
from npmx_connector.server.modules.schemas import ConnectRequest

router = APIRouter(tags=["Session"])

LOGGER = logging.getLogger(__name__)


@router.post("/connect")
async def connect(
    payload: Optional[ConnectRequest] = None,
    connector: ConnectorState = Depends(get_connector),
) -> Dict[str, Any]:
    """Handshake: validate the pasted token and record the npm identity."""
    session = await connector.connect(payload.token if payload else None)
    return success(session.to_dict())


@router.get("/state")
async def state(connector: ConnectorState = Depends(require_token)) -> Dict[str, Any]:
    return success(connector.snapshot())


@router.get("/health")
async def health() -> Dict[str, Any]:
    return success({"status": "ok", "version": __version__})
