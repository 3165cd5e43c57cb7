from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

# npmx_connector/core/operations.py
# Operation records, their closed set of kinds and the npm argv for each kind.


class OperationKind(str, Enum):
    ORG_ADD_USER = "org:add-user"
    ORG_RM_USER = "org:rm-user"
    TEAM_CREATE = "team:create"
    TEAM_DESTROY = "team:destroy"
    TEAM_ADD_USER = "team:add-user"
    TEAM_RM_USER = "team:rm-user"
    ACCESS_GRANT = "access:grant"
    ACCESS_REVOKE = "access:revoke"
    OWNER_ADD = "owner:add"
    OWNER_RM = "owner:rm"


class OperationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


ORG_ROLES: Tuple[str, ...] = ("developer", "admin", "owner")
ACCESS_PERMISSIONS: Tuple[str, ...] = ("read-only", "read-write")


@dataclass(frozen=True)
class KindSpec:
    """Parameter shape and npm invocation for one operation kind."""

    params: Tuple[str, ...]
    argv: Callable[[Mapping[str, str]], List[str]]


KIND_SPECS: Dict[OperationKind, KindSpec] = {
    OperationKind.ORG_ADD_USER: KindSpec(
        ("org", "user", "role"),
        lambda p: ["org", "set", p["org"], p["user"], p["role"]],
    ),
    OperationKind.ORG_RM_USER: KindSpec(
        ("org", "user"),
        lambda p: ["org", "rm", p["org"], p["user"]],
    ),
    OperationKind.TEAM_CREATE: KindSpec(
        ("scopeTeam",),
        lambda p: ["team", "create", p["scopeTeam"]],
    ),
    OperationKind.TEAM_DESTROY: KindSpec(
        ("scopeTeam",),
        lambda p: ["team", "destroy", p["scopeTeam"]],
    ),
    OperationKind.TEAM_ADD_USER: KindSpec(
        ("scopeTeam", "user"),
        lambda p: ["team", "add", p["scopeTeam"], p["user"]],
    ),
    OperationKind.TEAM_RM_USER: KindSpec(
        ("scopeTeam", "user"),
        lambda p: ["team", "rm", p["scopeTeam"], p["user"]],
    ),
    OperationKind.ACCESS_GRANT: KindSpec(
        ("permission", "scopeTeam", "pkg"),
        lambda p: ["access", "grant", p["permission"], p["scopeTeam"], p["pkg"]],
    ),
    OperationKind.ACCESS_REVOKE: KindSpec(
        ("scopeTeam", "pkg"),
        lambda p: ["access", "revoke", p["scopeTeam"], p["pkg"]],
    ),
    OperationKind.OWNER_ADD: KindSpec(
        ("user", "pkg"),
        lambda p: ["owner", "add", p["user"], p["pkg"]],
    ),
    OperationKind.OWNER_RM: KindSpec(
        ("user", "pkg"),
        lambda p: ["owner", "rm", p["user"], p["pkg"]],
    ),
}

_missing_kinds = set(OperationKind) - set(KIND_SPECS)
if _missing_kinds:  # pragma: no cover - guards edits to the table above
    raise RuntimeError(f"no KindSpec for {sorted(k.value for k in _missing_kinds)}")


def npm_args(kind: OperationKind, params: Mapping[str, str]) -> List[str]:
    """Return the npm argv (without the executable) for ``kind``."""
    return KIND_SPECS[OperationKind(kind)].argv(params)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ExecutionResult:
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    requires_otp: bool = False
    auth_failure: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exitCode": self.exit_code,
            "requiresOtp": self.requires_otp,
            "authFailure": self.auth_failure,
        }


DEPENDENCY_SKIPPED = ExecutionResult(
    stdout="", stderr="Skipped: dependency failed", exit_code=1
)


@dataclass(frozen=True)
class Operation:
    id: str
    kind: OperationKind
    params: Dict[str, str]
    description: str = ""
    command: str = ""
    status: OperationStatus = OperationStatus.PENDING
    created_at: int = field(default_factory=_now_ms)
    depends_on: Optional[str] = None
    result: Optional[ExecutionResult] = None

    def evolve(self, **changes: Any) -> "Operation":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "params": dict(self.params),
            "description": self.description,
            "command": self.command,
            "status": self.status.value,
            "createdAt": self.created_at,
            "dependsOn": self.depends_on,
            "result": self.result.to_dict() if self.result else None,
        }


__all__ = [
    "ACCESS_PERMISSIONS",
    "DEPENDENCY_SKIPPED",
    "ExecutionResult",
    "KIND_SPECS",
    "KindSpec",
    "ORG_ROLES",
    "Operation",
    "OperationKind",
    "OperationStatus",
    "npm_args",
]
