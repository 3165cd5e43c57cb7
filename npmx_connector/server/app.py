"""
npmx connector FastAPI entrypoint.

Provides a ``create_app`` factory that wires one :class:`ConnectorState` into
the application, configures CORS for the browser UI, request middleware, the
envelope exception handlers and the connector routers.
"""

from __future__ import annotations

import importlib
import logging
from typing import Optional, Sequence

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from npmx_connector import __version__
from npmx_connector.config.settings import ConnectorConfig
from npmx_connector.core.session import ConnectorState
from npmx_connector.server.core.errors import register_exception_handlers
from npmx_connector.server.core.middleware import RequestContextMiddleware

LOGGER = logging.getLogger(__name__)
ROUTER_MODULES: tuple[str, ...] = (
    "npmx_connector.server.modules.session_api",
    "npmx_connector.server.modules.operations_api",
    "npmx_connector.server.modules.listing_api",
)
CORS_METHODS: tuple[str, ...] = ("GET", "POST", "DELETE", "OPTIONS")
CORS_HEADERS: tuple[str, ...] = ("Content-Type", "Authorization")


def _include_routers(app: FastAPI, modules: Sequence[str] = ROUTER_MODULES) -> list[str]:
    registry: list[str] = []
    for module_name in modules:
        module = importlib.import_module(module_name)
        app.include_router(module.router)
        registry.append(module_name)
        LOGGER.debug("Included router: %s", module_name)
    return registry


def create_app(
    connector: ConnectorState,
    *,
    config: Optional[ConnectorConfig] = None,
    enable_cors: bool = True,
) -> FastAPI:
    """Application factory used by the CLI and by tests."""
    config = config or ConnectorConfig()
    app = FastAPI(title="npmx connector", version=__version__)
    app.state.version = __version__
    app.state.connector = connector
    app.state.config = config

    if enable_cors:
        origins = list(config.allowed_origins)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=list(CORS_METHODS),
            allow_headers=list(CORS_HEADERS),
        )
        LOGGER.info("CORS enabled", extra={"origins": origins})

    app.add_middleware(RequestContextMiddleware)

    register_exception_handlers(app)
    app.state.router_catalog = _include_routers(app)

    LOGGER.info(
        "FastAPI application ready",
        extra={
            "routes": len(app.routes),
            "routers_loaded": len(app.state.router_catalog),
            "version": __version__,
        },
    )
    return app


__all__ = ["create_app"]
