"""Validation of operation params before they are queued."""

from __future__ import annotations

import re
from typing import Dict, List, Mapping
from urllib.parse import quote

from npmx_connector.core.exceptions import InvalidParams
from npmx_connector.core.operations import (
    ACCESS_PERMISSIONS,
    KIND_SPECS,
    ORG_ROLES,
    OperationKind,
)

_URL_SAFE = "-_.!~*'()"
_SCOPED_NAME = re.compile(r"^@([^/]+)/([^/]+)$")
_BLACKLIST = frozenset({"node_modules", "favicon.ico"})
_SCOPE_TEAM = re.compile(r"^@?[^\s@:/]+:[^\s@:/]+$")


def _url_safe(value: str) -> bool:
    return quote(value, safe=_URL_SAFE) == value


def package_name_errors(name: str) -> List[str]:
    """Return the reasons ``name`` cannot be an npm package name."""
    errors: List[str] = []
    if not name:
        return ["name length must be greater than zero"]
    if name.startswith("."):
        errors.append("name cannot start with a period")
    if name.startswith("_"):
        errors.append("name cannot start with an underscore")
    if name.strip() != name:
        errors.append("name cannot contain leading or trailing spaces")
    if name.lower() in _BLACKLIST:
        errors.append(f"{name} is a blacklisted name")
    if not _url_safe(name):
        scoped = _SCOPED_NAME.match(name)
        if not scoped or not all(_url_safe(part) for part in scoped.groups()):
            errors.append("name can only contain URL-friendly characters")
    return errors


def assert_valid_package_name(name: str) -> None:
    errors = package_name_errors(name)
    if errors:
        raise InvalidParams(f"Invalid package name: {errors[0]}")


def assert_not_option(value: str, field: str) -> None:
    """Refuse values npm would parse as a command-line option."""
    if value.startswith("-"):
        raise InvalidParams(f"{field} cannot start with '-'", details={field: value})


def assert_valid_scope_team(value: str) -> None:
    assert_not_option(value, "scopeTeam")
    if not _SCOPE_TEAM.match(value):
        raise InvalidParams(
            "scopeTeam must look like @scope:team", details={"scopeTeam": value}
        )


def validate_params(kind: OperationKind, params: Mapping[str, str]) -> Dict[str, str]:
    """Check ``params`` against the shape of ``kind`` and return a clean copy."""
    spec = KIND_SPECS[kind]
    missing = [name for name in spec.params if not str(params.get(name) or "").strip()]
    if missing:
        raise InvalidParams(
            f"Missing parameter(s) for {kind.value}: {', '.join(missing)}",
            details={"kind": kind.value, "missing": missing},
        )
    clean = {str(key): str(value).strip() for key, value in params.items()}
    for name, value in clean.items():
        assert_not_option(value, name)
    if "role" in spec.params and clean["role"] not in ORG_ROLES:
        raise InvalidParams(
            f"role must be one of {', '.join(ORG_ROLES)}",
            details={"role": clean["role"]},
        )
    if "permission" in spec.params and clean["permission"] not in ACCESS_PERMISSIONS:
        raise InvalidParams(
            f"permission must be one of {', '.join(ACCESS_PERMISSIONS)}",
            details={"permission": clean["permission"]},
        )
    if "scopeTeam" in spec.params:
        assert_valid_scope_team(clean["scopeTeam"])
    if "pkg" in spec.params:
        assert_valid_package_name(clean["pkg"])
    return clean


__all__ = [
    "assert_not_option",
    "assert_valid_package_name",
    "assert_valid_scope_team",
    "package_name_errors",
    "validate_params",
]
