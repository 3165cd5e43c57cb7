"""Command executor boundary: runs privileged npm commands for operations.

:class:`CommandExecutor` is the contract the scheduler and HTTP surface depend
on. :class:`NpmExecutor` implements it by spawning the ``npm`` CLI directly
(argv list, no shell) under a fixed timeout. Executors never touch the
operation store; they only turn a request into an :class:`ExecutionResult`.
"""

from __future__ import annotations

import asyncio
import logging
import os
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from npmx_connector.core.classify import (
    Classification,
    display_message,
    filter_noise,
    matches,
)
from npmx_connector.core.operations import ExecutionResult, OperationKind, npm_args

LOGGER = logging.getLogger("npmx_connector.npm")

DEFAULT_TIMEOUT = 60.0
OTP_MASK = "******"


class QueryKind(str, Enum):
    ORG_USERS = "org-users"
    ORG_TEAMS = "org-teams"
    TEAM_USERS = "team-users"
    PACKAGE_COLLABORATORS = "package-collaborators"


QUERY_ARGS: Dict[QueryKind, Callable[[str], List[str]]] = {
    QueryKind.ORG_USERS: lambda org: ["org", "ls", org, "--json"],
    QueryKind.ORG_TEAMS: lambda org: ["team", "ls", org, "--json"],
    QueryKind.TEAM_USERS: lambda scope_team: ["team", "ls", scope_team, "--json"],
    QueryKind.PACKAGE_COLLABORATORS: lambda pkg: [
        "access",
        "list",
        "collaborators",
        pkg,
        "--json",
    ],
}


class CommandExecutor(Protocol):
    async def execute(
        self, kind: OperationKind, params: Mapping[str, str], otp: Optional[str] = None
    ) -> ExecutionResult: ...

    async def whoami(self) -> Optional[str]: ...

    async def query(self, kind: QueryKind, target: str) -> ExecutionResult: ...


def display_command(argv: Sequence[str], otp: Optional[str] = None) -> str:
    """Render ``argv`` for logs, masking the OTP value."""
    shown = list(argv)
    if otp:
        shown += ["--otp", OTP_MASK]
    return " ".join(shown)


def failure_result(stdout: str, stderr: str, exit_code: int) -> ExecutionResult:
    flags = matches(stderr)
    return ExecutionResult(
        stdout=stdout,
        stderr=display_message(stderr),
        exit_code=exit_code or 1,
        requires_otp=Classification.OTP in flags,
        auth_failure=Classification.AUTH in flags,
    )


async def _reap(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


class NpmExecutor:
    def __init__(
        self,
        npm_bin: str = "npm",
        *,
        timeout: float = DEFAULT_TIMEOUT,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.npm_bin = npm_bin
        self.timeout = float(timeout)
        self._env = dict(env) if env is not None else None

    def _environment(self) -> Dict[str, str]:
        base = dict(os.environ if self._env is None else self._env)
        base["FORCE_COLOR"] = "0"
        return base

    async def run(
        self,
        args: Sequence[str],
        *,
        otp: Optional[str] = None,
        silent: bool = False,
    ) -> ExecutionResult:
        argv = [self.npm_bin, *args]
        if otp:
            argv += ["--otp", otp]
        if not silent:
            LOGGER.info("$ %s", display_command([self.npm_bin, *args], otp))

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._environment(),
            )
        except OSError as exc:
            LOGGER.error("Failed to start %s: %s", self.npm_bin, exc)
            return ExecutionResult(stderr=str(exc), exit_code=127)

        try:
            raw_out, raw_err = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout
            )
        except asyncio.CancelledError:
            await _reap(proc)
            LOGGER.warning("Command cancelled; killed pid %s", proc.pid)
            raise
        except asyncio.TimeoutError:
            await _reap(proc)
            LOGGER.error("Command timed out after %gs", self.timeout)
            return ExecutionResult(
                stderr=f"Command timed out after {self.timeout:g}s", exit_code=1
            )

        stdout = raw_out.decode("utf-8", errors="replace").strip()
        stderr = raw_err.decode("utf-8", errors="replace").strip()

        if proc.returncode == 0:
            if not silent:
                LOGGER.info("Done")
            return ExecutionResult(stdout=stdout, stderr=filter_noise(stderr))

        result = failure_result(stdout, stderr, proc.returncode or 1)
        if not silent:
            if result.requires_otp:
                LOGGER.warning("OTP required")
            elif result.auth_failure:
                LOGGER.warning(
                    'Authentication required - please run "npm login" and restart the connector'
                )
            else:
                first = filter_noise(stderr).split("\n")[0]
                LOGGER.error(first or "Command failed")
        return result

    async def execute(
        self, kind: OperationKind, params: Mapping[str, str], otp: Optional[str] = None
    ) -> ExecutionResult:
        return await self.run(npm_args(kind, params), otp=otp)

    async def whoami(self) -> Optional[str]:
        result = await self.run(["whoami"], silent=True)
        if result.ok and result.stdout:
            return result.stdout
        return None

    async def query(self, kind: QueryKind, target: str) -> ExecutionResult:
        return await self.run(QUERY_ARGS[QueryKind(kind)](target), silent=True)


__all__ = [
    "CommandExecutor",
    "DEFAULT_TIMEOUT",
    "NpmExecutor",
    "OTP_MASK",
    "QUERY_ARGS",
    "QueryKind",
    "display_command",
    "failure_result",
]
