"""FastAPI router package for the connector's HTTP surface.

Each module exposes a module-level ``router``; :mod:`npmx_connector.server.app`
includes them in a fixed order.
"""

__all__ = []
