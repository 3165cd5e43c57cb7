from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from npmx_connector.core.session import ConnectorState
from npmx_connector.server.core.envelope import success
from npmx_connector.server.deps import require_token
from npmx_connector.server.modules.schemas import ExecuteRequest, OperationRequest

router = APIRouter(tags=["Operations"])

LOGGER = logging.getLogger(__name__)


@router.post("/operations")
async def create_operation(
    payload: OperationRequest, connector: ConnectorState = Depends(require_token)
) -> Dict[str, Any]:
    op = connector.store.add(payload.to_draft())
    return success(op.to_dict())


@router.post("/operations/batch")
async def create_operations(
    payload: List[OperationRequest], connector: ConnectorState = Depends(require_token)
) -> Dict[str, Any]:
    """Queue every operation in array order, or none if any is invalid."""
    created = connector.store.add_many([item.to_draft() for item in payload])
    return success([op.to_dict() for op in created])


@router.post("/approve")
async def approve_operation(
    id: str = Query(..., min_length=1),
    connector: ConnectorState = Depends(require_token),
) -> Dict[str, Any]:
    op = connector.store.approve(id)
    return success(op.to_dict())


@router.post("/approve-all")
async def approve_all(connector: ConnectorState = Depends(require_token)) -> Dict[str, Any]:
    return success({"approved": connector.store.approve_all()})


@router.post("/retry")
async def retry_operation(
    id: str = Query(..., min_length=1),
    connector: ConnectorState = Depends(require_token),
) -> Dict[str, Any]:
    op = connector.store.retry(id)
    return success(op.to_dict())


@router.post("/execute")
async def execute(
    payload: Optional[ExecuteRequest] = None,
    connector: ConnectorState = Depends(require_token),
) -> Dict[str, Any]:
    """Run approved operations to convergence, or until an OTP is needed."""
    summary = await connector.execute(payload.otp if payload else None)
    return success(summary.to_dict())


@router.delete("/operations/all")
async def remove_all(connector: ConnectorState = Depends(require_token)) -> Dict[str, Any]:
    return success({"removed": connector.store.remove_all()})


@router.delete("/operations")
async def remove_operation(
    id: str = Query(..., min_length=1),
    connector: ConnectorState = Depends(require_token),
) -> Dict[str, Any]:
    op = connector.store.remove(id)
    return success(op.to_dict())
