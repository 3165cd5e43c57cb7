from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer
import uvicorn

from npmx_connector import __version__
from npmx_connector.config.settings import load_config
from npmx_connector.core.executor import NpmExecutor
from npmx_connector.core.session import ConnectorState, generate_token
from npmx_connector.logging_config import init_logging
from npmx_connector.server.app import create_app

app = typer.Typer(add_completion=False, help="Local connector for npmx.dev.")
logger = logging.getLogger(__name__)


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, help="Port to listen on (default 31415)."),
    host: Optional[str] = typer.Option(None, help="Interface to bind (default 127.0.0.1)."),
    timeout: Optional[float] = typer.Option(
        None, help="Seconds before an npm command is killed (default 60)."
    ),
    npm_bin: Optional[str] = typer.Option(None, help="npm executable to run."),
    log_level: Optional[str] = typer.Option(None, help="Log level (default INFO)."),
) -> None:
    """Check npm authentication, mint a session token and start the connector."""
    config = load_config().with_overrides(
        port=port,
        host=host,
        command_timeout=timeout,
        npm_bin=npm_bin,
        log_level=log_level.upper() if log_level else None,
    )
    log_path = init_logging(config.log_dir, level=config.log_level)
    logger.info("Logging to %s", log_path)

    executor = NpmExecutor(config.npm_bin, timeout=config.command_timeout)
    logger.info("Checking npm authentication...")
    identity = asyncio.run(executor.whoami())
    if not identity:
        typer.echo(
            'Not logged in to npm. Run "npm login" and start the connector again.',
            err=True,
        )
        raise typer.Exit(code=1)
    logger.info("Authenticated as: %s", identity)

    connector = ConnectorState(executor, token=generate_token())
    typer.echo(f"npmx connector {__version__} authenticated as {identity}")
    typer.echo(f"Listening on http://{config.host}:{config.port}")
    typer.echo(f"Paste this token into npmx.dev to connect: {connector.session.token}")

    application = create_app(connector, config=config)
    logger.info("Waiting for connection... (Press Ctrl+C to stop)")
    uvicorn.run(
        application,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


@app.command()
def version() -> None:
    """Print the connector version."""
    typer.echo(__version__)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
