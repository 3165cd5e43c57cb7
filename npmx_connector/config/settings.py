from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

CONFIG_PATH = Path("config/connector.json")
CONFIG_CANDIDATES: tuple[Path, ...] = (CONFIG_PATH, Path("connector.json"))
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 31415
DEFAULT_TIMEOUT = 60.0
DEFAULT_NPM_BIN = "npm"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_ORIGINS: tuple[str, ...] = ("*",)

ENV_HOST = "NPMX_CONNECTOR_HOST"
ENV_PORT = "NPMX_CONNECTOR_PORT"
ENV_TIMEOUT = "NPMX_CONNECTOR_TIMEOUT"
ENV_NPM_BIN = "NPMX_CONNECTOR_NPM_BIN"
ENV_LOG_LEVEL = "NPMX_CONNECTOR_LOG_LEVEL"
ENV_LOG_DIR = "NPMX_CONNECTOR_LOG_DIR"
ENV_CORS_ORIGINS = "NPMX_CONNECTOR_CORS_ORIGINS"


@dataclass(frozen=True)
class ConnectorConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    command_timeout: float = DEFAULT_TIMEOUT
    npm_bin: str = DEFAULT_NPM_BIN
    log_level: str = DEFAULT_LOG_LEVEL
    log_dir: str | None = None
    allowed_origins: tuple[str, ...] = DEFAULT_ORIGINS

    def to_dict(self) -> dict[str, object]:
        return {
            "host": self.host,
            "port": self.port,
            "command_timeout": self.command_timeout,
            "npm_bin": self.npm_bin,
            "log_level": self.log_level,
            "log_dir": self.log_dir,
            "allowed_origins": list(self.allowed_origins),
        }

    def with_overrides(self, **overrides: Any) -> "ConnectorConfig":
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        if "port" in changes:
            changes["port"] = _normalise_port(changes["port"], self.port)
        return replace(self, **changes)


def _load_raw_config() -> dict:
    for path in CONFIG_CANDIDATES:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            continue
        except json.JSONDecodeError:
            continue
    return {}


def _normalise_port(value: object, fallback: int = DEFAULT_PORT) -> int:
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        return fallback
    if port <= 0 or port > 65535:
        return fallback
    return port


def _normalise_timeout(value: object, fallback: float = DEFAULT_TIMEOUT) -> float:
    try:
        timeout = float(str(value).strip())
    except (TypeError, ValueError):
        return fallback
    return timeout if timeout > 0 else fallback


def _parse_origins(value: object) -> tuple[str, ...]:
    if isinstance(value, str):
        items = value.replace(";", ",").split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        return DEFAULT_ORIGINS
    origins = [item.strip() for item in items if item.strip()]
    return tuple(dict.fromkeys(origins)) or DEFAULT_ORIGINS


def _config_section(payload: Mapping[str, object]) -> Mapping[str, object]:
    connector = payload.get("connector")
    if isinstance(connector, Mapping):
        return connector
    return {}


def _apply_env_overrides(cfg: ConnectorConfig) -> ConnectorConfig:
    changes: dict[str, Any] = {}

    env_host = os.getenv(ENV_HOST)
    if env_host and env_host.strip():
        changes["host"] = env_host.strip()

    env_port = os.getenv(ENV_PORT)
    if env_port:
        changes["port"] = _normalise_port(env_port, cfg.port)

    env_timeout = os.getenv(ENV_TIMEOUT)
    if env_timeout:
        changes["command_timeout"] = _normalise_timeout(env_timeout, cfg.command_timeout)

    env_npm = os.getenv(ENV_NPM_BIN)
    if env_npm and env_npm.strip():
        changes["npm_bin"] = env_npm.strip()

    env_level = os.getenv(ENV_LOG_LEVEL)
    if env_level and env_level.strip():
        changes["log_level"] = env_level.strip().upper()

    env_log_dir = os.getenv(ENV_LOG_DIR)
    if env_log_dir and env_log_dir.strip():
        changes["log_dir"] = env_log_dir.strip()

    env_origins = os.getenv(ENV_CORS_ORIGINS)
    if env_origins:
        changes["allowed_origins"] = _parse_origins(env_origins)

    return replace(cfg, **changes)


def load_config() -> ConnectorConfig:
    """
    Return the connector configuration: file values, then environment overrides.
    """
    section = _config_section(_load_raw_config())
    log_dir = section.get("log_dir")
    cfg = ConnectorConfig(
        host=str(section.get("host") or DEFAULT_HOST),
        port=_normalise_port(section.get("port", DEFAULT_PORT)),
        command_timeout=_normalise_timeout(
            section.get("command_timeout", DEFAULT_TIMEOUT)
        ),
        npm_bin=str(section.get("npm_bin") or DEFAULT_NPM_BIN),
        log_level=str(section.get("log_level") or DEFAULT_LOG_LEVEL).upper(),
        log_dir=str(log_dir) if log_dir else None,
        allowed_origins=_parse_origins(section.get("allowed_origins", DEFAULT_ORIGINS)),
    )
    return _apply_env_overrides(cfg)


__all__ = ["ConnectorConfig", "DEFAULT_PORT", "load_config"]
