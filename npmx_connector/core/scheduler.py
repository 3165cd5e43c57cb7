"""Dependency-aware wave scheduler for approved operations.

How a run works
---------------
:meth:`ExecutionScheduler.run` takes the operations that are ``approved`` when
the call starts and executes them in *waves*. Each wave is every remaining
operation whose single predecessor (``depends_on``) is absent or completed;
the wave's operations are marked ``running`` and dispatched concurrently, and
the scheduler waits for all of them to settle before computing the next wave.

Failure cascade
---------------
When a predecessor has failed, its dependents are recorded as failed with the
synthetic result ``Skipped: dependency failed`` and the executor is never
called for them. Freshly failed ids feed the next wave's computation, so the
cascade is transitive.

OTP stall
---------
Once a wave reports ``requires_otp`` and the caller supplied no OTP, the next
non-empty wave is not started. Its operations stay ``approved`` so a later
call carrying an OTP can pick them up.

Predecessors outside the run
----------------------------
A predecessor that is not part of the run is judged by its current status in
the store: ``completed`` satisfies the dependency, ``failed`` cascades, and
anything else (pending, running, deleted) leaves the dependent waiting.

Cancellation
------------
If the run itself is cancelled (for instance the HTTP client went away), every
operation of the interrupted wave that is still ``running`` is recorded as
failed before the cancellation propagates, so it can be retried or removed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from npmx_connector.core.executor import CommandExecutor
from npmx_connector.core.operations import (
    DEPENDENCY_SKIPPED,
    ExecutionResult,
    Operation,
    OperationStatus,
)
from npmx_connector.core.store import OperationStore

LOGGER = logging.getLogger(__name__)

EXECUTION_CANCELLED = ExecutionResult(
    stdout="", stderr="Cancelled: execution was interrupted", exit_code=1
)


@dataclass
class ExecutionSummary:
    results: List[Tuple[str, ExecutionResult]] = field(default_factory=list)
    otp_required: bool = False
    auth_failure: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [
                {"id": op_id, "result": result.to_dict()}
                for op_id, result in self.results
            ],
            "otpRequired": self.otp_required,
            "authFailure": self.auth_failure,
        }


class ExecutionScheduler:
    def __init__(self, store: OperationStore, executor: CommandExecutor) -> None:
        self.store = store
        self.executor = executor

    def _dependency_state(
        self, dep_id: str, completed: Set[str], failed: Set[str]
    ) -> Optional[OperationStatus]:
        if dep_id in completed:
            return OperationStatus.COMPLETED
        if dep_id in failed:
            return OperationStatus.FAILED
        dep = self.store.find(dep_id)
        return dep.status if dep is not None else None

    def _skip(self, op: Operation, summary: ExecutionSummary, failed: Set[str]) -> None:
        self.store.mark_running(op.id)
        self.store.record_result(op.id, DEPENDENCY_SKIPPED)
        failed.add(op.id)
        summary.results.append((op.id, DEPENDENCY_SKIPPED))
        LOGGER.info(
            "Skipped operation with failed dependency",
            extra={"op_id": op.id, "depends_on": op.depends_on},
        )

    def _ready(
        self,
        candidates: List[str],
        completed: Set[str],
        failed: Set[str],
        summary: ExecutionSummary,
    ) -> List[Operation]:
        ready: List[Operation] = []
        for op_id in candidates:
            if op_id in completed or op_id in failed:
                continue
            op = self.store.find(op_id)
            if op is None or op.status is not OperationStatus.APPROVED:
                # Removed or otherwise moved on while an earlier wave ran.
                continue
            if not op.depends_on:
                ready.append(op)
                continue
            dep_state = self._dependency_state(op.depends_on, completed, failed)
            if dep_state is OperationStatus.COMPLETED:
                ready.append(op)
            elif dep_state is OperationStatus.FAILED:
                self._skip(op, summary, failed)
        return ready

    def _abandon(self, wave: List[Operation], failed: Set[str]) -> None:
        """Fail whatever is still running after the wave was cancelled."""
        for op in wave:
            current = self.store.find(op.id)
            if current is None or current.status is not OperationStatus.RUNNING:
                continue
            self.store.record_result(op.id, EXECUTION_CANCELLED)
            failed.add(op.id)
            LOGGER.warning("Operation cancelled while running", extra={"op_id": op.id})

    async def _dispatch(self, op: Operation, otp: Optional[str]) -> ExecutionResult:
        try:
            return await self.executor.execute(op.kind, op.params, otp)
        except Exception as exc:
            LOGGER.exception("Executor raised for operation %s", op.id)
            return ExecutionResult(stderr=str(exc) or type(exc).__name__, exit_code=1)

    async def run(self, otp: Optional[str] = None) -> ExecutionSummary:
        otp = otp or None
        candidates = [op.id for op in self.store.with_status(OperationStatus.APPROVED)]
        summary = ExecutionSummary()
        completed: Set[str] = set()
        failed: Set[str] = set()
        wave_no = 0

        while True:
            ready = self._ready(candidates, completed, failed, summary)
            if not ready:
                break
            if summary.otp_required and not otp:
                LOGGER.info(
                    "OTP required; leaving %d operation(s) approved", len(ready)
                )
                break

            wave_no += 1
            for op in ready:
                self.store.mark_running(op.id)
            LOGGER.info(
                "Running wave %d",
                wave_no,
                extra={"wave": wave_no, "op_ids": [op.id for op in ready]},
            )

            async def _settle(op: Operation) -> None:
                # Each task writes only its own record.
                result = await self._dispatch(op, otp)
                self.store.record_result(op.id, result)
                (completed if result.ok else failed).add(op.id)
                if result.requires_otp:
                    summary.otp_required = True
                summary.results.append((op.id, result))

            try:
                await asyncio.gather(*(_settle(op) for op in ready))
            except asyncio.CancelledError:
                self._abandon(ready, failed)
                raise

        summary.auth_failure = any(result.auth_failure for _, result in summary.results)
        LOGGER.info(
            "Execution finished",
            extra={
                "waves": wave_no,
                "completed": len(completed),
                "failed": len(failed),
                "otp_required": summary.otp_required,
                "auth_failure": summary.auth_failure,
            },
        )
        return summary


__all__ = ["EXECUTION_CANCELLED", "ExecutionScheduler", "ExecutionSummary"]
