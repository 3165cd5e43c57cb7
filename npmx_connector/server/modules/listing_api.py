"""Read-only pass-through queries against the local npm CLI.

These endpoints report npm failures and unparseable output inside the
envelope (``success: false``) instead of raising, so the browser can show the
message next to the view that asked for it.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from npmx_connector.core.executor import QueryKind
from npmx_connector.core.session import ConnectorState
from npmx_connector.core.validation import (
    assert_not_option,
    assert_valid_package_name,
    assert_valid_scope_team,
)
from npmx_connector.server.core.envelope import failure, success
from npmx_connector.server.deps import require_token

router = APIRouter(tags=["Listing"])

LOGGER = logging.getLogger(__name__)

_LABELS: Dict[QueryKind, str] = {
    QueryKind.ORG_USERS: "org users",
    QueryKind.ORG_TEAMS: "teams",
    QueryKind.TEAM_USERS: "team users",
    QueryKind.PACKAGE_COLLABORATORS: "collaborators",
}

_SHAPES: Dict[QueryKind, type] = {
    QueryKind.ORG_USERS: dict,
    QueryKind.ORG_TEAMS: list,
    QueryKind.TEAM_USERS: list,
    QueryKind.PACKAGE_COLLABORATORS: dict,
}


async def _run_query(
    connector: ConnectorState, kind: QueryKind, target: str
) -> Dict[str, Any]:
    label = _LABELS[kind]
    result = await connector.executor.query(kind, target)
    if not result.ok:
        return failure(result.stderr or f"Failed to list {label}", code="command_failed")
    try:
        data = json.loads(result.stdout)
    except ValueError:
        LOGGER.warning("Unparseable npm output for %s %s", kind.value, target)
        return failure(f"Failed to parse {label}", code="parse_error")
    if not isinstance(data, _SHAPES[kind]):
        LOGGER.warning("Unexpected npm output shape for %s %s", kind.value, target)
        return failure(f"Failed to parse {label}", code="parse_error")
    return success(data)


@router.get("/org/{org}/users")
async def org_users(
    org: str, connector: ConnectorState = Depends(require_token)
) -> Dict[str, Any]:
    assert_not_option(org, "org")
    return await _run_query(connector, QueryKind.ORG_USERS, org)


@router.get("/org/{org}/teams")
async def org_teams(
    org: str, connector: ConnectorState = Depends(require_token)
) -> Dict[str, Any]:
    assert_not_option(org, "org")
    return await _run_query(connector, QueryKind.ORG_TEAMS, org)


@router.get("/team/{scope_team}/users")
async def team_users(
    scope_team: str, connector: ConnectorState = Depends(require_token)
) -> Dict[str, Any]:
    assert_valid_scope_team(scope_team)
    return await _run_query(connector, QueryKind.TEAM_USERS, scope_team)


@router.get("/package/{pkg:path}/collaborators")
async def package_collaborators(
    pkg: str, connector: ConnectorState = Depends(require_token)
) -> Dict[str, Any]:
    # {pkg:path} keeps scoped names such as @nuxt/kit in one parameter.
    assert_not_option(pkg, "pkg")
    assert_valid_package_name(pkg)
    return await _run_query(connector, QueryKind.PACKAGE_COLLABORATORS, pkg)
