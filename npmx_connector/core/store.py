from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from npmx_connector.core.exceptions import (
    InvalidParams,
    InvalidTransition,
    OperationNotFound,
)
from npmx_connector.core.operations import (
    ExecutionResult,
    Operation,
    OperationKind,
    OperationStatus,
)
from npmx_connector.core.validation import validate_params

# npmx_connector/core/store.py
# Ordered, thread-safe operation store. Records are immutable and every
# transition swaps the whole record under the lock.

LOGGER = logging.getLogger(__name__)

DELETABLE = frozenset(
    {
        OperationStatus.PENDING,
        OperationStatus.APPROVED,
        OperationStatus.COMPLETED,
        OperationStatus.FAILED,
    }
)


@dataclass
class NewOperation:
    kind: str
    params: Mapping[str, str] = field(default_factory=dict)
    description: str = ""
    command: str = ""
    depends_on: Optional[str] = None


class OperationStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._ops: Dict[str, Operation] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def find(self, op_id: str) -> Optional[Operation]:
        with self._lock:
            return self._ops.get(op_id)

    def get(self, op_id: str) -> Operation:
        op = self.find(op_id)
        if op is None:
            raise OperationNotFound(op_id)
        return op

    def list(self) -> List[Operation]:
        with self._lock:
            return list(self._ops.values())

    def with_status(self, status: OperationStatus) -> List[Operation]:
        return [op for op in self.list() if op.status is status]

    def __len__(self) -> int:
        with self._lock:
            return len(self._ops)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    def _new_id(self, reserved: Iterable[str] = ()) -> str:
        taken = set(reserved)
        while True:
            candidate = secrets.token_hex(8)
            if candidate not in self._ops and candidate not in taken:
                return candidate

    def _build(self, draft: NewOperation, reserved: Iterable[str] = ()) -> Operation:
        try:
            kind = OperationKind(draft.kind)
        except ValueError:
            raise InvalidParams(
                f"Unknown operation kind: {draft.kind}", details={"kind": draft.kind}
            ) from None
        params = validate_params(kind, draft.params or {})
        if draft.depends_on and draft.depends_on not in self._ops:
            raise OperationNotFound(draft.depends_on)
        return Operation(
            id=self._new_id(reserved),
            kind=kind,
            params=params,
            description=draft.description or "",
            command=draft.command or "",
            depends_on=draft.depends_on or None,
        )

    def add(self, draft: NewOperation) -> Operation:
        return self.add_many([draft])[0]

    def add_many(self, drafts: Iterable[NewOperation]) -> List[Operation]:
        """Append all drafts in order, or none of them if any is invalid."""
        with self._lock:
            created: List[Operation] = []
            for draft in drafts:
                created.append(self._build(draft, [op.id for op in created]))
            for op in created:
                self._ops[op.id] = op
        for op in created:
            LOGGER.info(
                "Operation queued",
                extra={"op_id": op.id, "kind": op.kind.value, "depends_on": op.depends_on},
            )
        return created

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def _transition(
        self,
        op_id: str,
        source: OperationStatus,
        target: OperationStatus,
        message: str,
        **changes,
    ) -> Operation:
        with self._lock:
            op = self._ops.get(op_id)
            if op is None:
                raise OperationNotFound(op_id)
            if op.status is not source:
                raise InvalidTransition(
                    message, details={"id": op_id, "status": op.status.value}
                )
            updated = op.evolve(status=target, **changes)
            self._ops[op_id] = updated
            return updated

    def approve(self, op_id: str) -> Operation:
        return self._transition(
            op_id,
            OperationStatus.PENDING,
            OperationStatus.APPROVED,
            "Operation is not pending",
        )

    def approve_all(self) -> int:
        with self._lock:
            pending = [op for op in self._ops.values() if op.status is OperationStatus.PENDING]
            for op in pending:
                self._ops[op.id] = op.evolve(status=OperationStatus.APPROVED)
            return len(pending)

    def retry(self, op_id: str) -> Operation:
        return self._transition(
            op_id,
            OperationStatus.FAILED,
            OperationStatus.APPROVED,
            "Only failed operations can be retried",
            result=None,
        )

    def mark_running(self, op_id: str) -> Operation:
        return self._transition(
            op_id,
            OperationStatus.APPROVED,
            OperationStatus.RUNNING,
            "Only approved operations can run",
        )

    def record_result(self, op_id: str, result: ExecutionResult) -> Operation:
        target = OperationStatus.COMPLETED if result.ok else OperationStatus.FAILED
        return self._transition(
            op_id,
            OperationStatus.RUNNING,
            target,
            "Only running operations can record a result",
            result=result,
        )

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------
    def remove(self, op_id: str) -> Operation:
        with self._lock:
            op = self._ops.get(op_id)
            if op is None:
                raise OperationNotFound(op_id)
            if op.status not in DELETABLE:
                raise InvalidTransition(
                    "Cannot cancel running operation",
                    details={"id": op_id, "status": op.status.value},
                )
            del self._ops[op_id]
            return op

    def remove_all(self) -> int:
        with self._lock:
            doomed = [op_id for op_id, op in self._ops.items() if op.status in DELETABLE]
            for op_id in doomed:
                del self._ops[op_id]
            return len(doomed)


__all__ = ["DELETABLE", "NewOperation", "OperationStore"]
