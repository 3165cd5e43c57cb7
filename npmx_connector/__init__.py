"""npmx connector package namespace."""

from __future__ import annotations

from importlib import metadata

__all__ = ["__version__"]


def _resolve_version() -> str:
    try:
        return metadata.version("npmx-connector")
    except metadata.PackageNotFoundError:
        # Running from a source checkout without an installed distribution.
        return "0.0.0"


__version__ = _resolve_version()
