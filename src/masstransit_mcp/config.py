"""Server configuration loading and validation.

Configuration comes from an optional TOML file and from environment
variables, with the environment taking precedence::

    [rabbitmq]
    host = "rabbit.internal"
    port = 15672
    username = "ops"
    password = "${RABBITMQ_PASSWORD}"
    vhost = "/"
    ssl = false

    [server]
    allow_mutative_tools = false
    transport = "stdio"

    [logging]
    level = "INFO"
    format = "text"
"""

from __future__ import annotations

import os
import re
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_PATH_ENV = "MASSTRANSIT_MCP_CONFIG"
DEFAULT_MANAGEMENT_PORT = 15672
DEFAULT_VHOST = "/"
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_SERVER_PORT = 40300

TRANSPORTS = ("stdio", "sse", "http")
LOG_FORMATS = ("text", "json")

# ${VAR_NAME}: letters, digits and underscores.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigError(Exception):
    """Raised when configuration is missing, malformed, or invalid."""


@dataclass
class RabbitMQConfig:
    """Connection settings for the RabbitMQ management HTTP API."""

    host: str
    username: str
    password: str
    port: int = DEFAULT_MANAGEMENT_PORT
    vhost: str = DEFAULT_VHOST
    ssl: bool = False
    timeout_s: float = DEFAULT_TIMEOUT_S

    @property
    def base_url(self) -> str:
        scheme = "https" if self.ssl else "http"
        return f"{scheme}://{self.host}:{self.port}/api"


@dataclass
class ServerConfig:
    """MCP server settings from the [server] section."""

    allow_mutative_tools: bool = False
    transport: str = "stdio"
    host: str = "127.0.0.1"
    port: int = DEFAULT_SERVER_PORT


@dataclass
class LoggingConfig:
    """Logging configuration from the [logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class AppConfig:
    """Parsed and validated configuration."""

    rabbitmq: RabbitMQConfig
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def resolve_env_vars(value: Any, environ: Mapping[str, str] | None = None) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings. Non-string leaf values are returned
    unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    env = os.environ if environ is None else environ

    if isinstance(value, dict):
        return {k: resolve_env_vars(v, env) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item, env) for item in value]

    if isinstance(value, str):
        return _resolve_string(value, env)

    return value


def _resolve_string(s: str, environ: Mapping[str, str]) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s*, reporting every missing one."""
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(f"Unresolved environment variable(s) in config value: {vars_str}")

    return result


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _parse_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


def _read_toml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        return tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load configuration from an optional TOML file plus the environment.

    Parameters
    ----------
    config_path:
        TOML file to read. Falls back to ``$MASSTRANSIT_MCP_CONFIG``; when
        neither is set only the environment is used.
    environ:
        Environment mapping, ``os.environ`` by default.

    Raises
    ------
    ConfigError
        If the file is missing or invalid, a required setting is absent, or a
        value is out of range.
    """
    env = os.environ if environ is None else environ

    if config_path is None and env.get(CONFIG_PATH_ENV):
        config_path = Path(env[CONFIG_PATH_ENV])
    data: dict[str, Any] = {}
    if config_path is not None:
        data = resolve_env_vars(_read_toml(Path(config_path)), env)

    rabbit = dict(_section(data, "rabbitmq"))
    server = dict(_section(data, "server"))
    logging_section = dict(_section(data, "logging"))

    # --- Environment overrides ---
    for env_name, key in (
        ("RABBITMQ_HOST", "host"),
        ("RABBITMQ_PORT", "port"),
        ("RABBITMQ_USERNAME", "username"),
        ("RABBITMQ_PASSWORD", "password"),
        ("RABBITMQ_VHOST", "vhost"),
        ("RABBITMQ_SSL", "ssl"),
    ):
        if env.get(env_name):
            rabbit[key] = env[env_name]
    if env.get("ALLOW_MUTATIVE_TOOLS"):
        server["allow_mutative_tools"] = env["ALLOW_MUTATIVE_TOOLS"]
    if env.get("LOG_LEVEL"):
        logging_section["level"] = env["LOG_LEVEL"]
    if env.get("LOG_FORMAT"):
        logging_section["format"] = env["LOG_FORMAT"]

    # --- [rabbitmq] ---
    for key, env_name in (
        ("host", "RABBITMQ_HOST"),
        ("username", "RABBITMQ_USERNAME"),
        ("password", "RABBITMQ_PASSWORD"),
    ):
        if not rabbit.get(key):
            raise ConfigError(f"{env_name} environment variable is required")

    try:
        timeout_s = float(rabbit.get("timeout_s", DEFAULT_TIMEOUT_S))
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"rabbitmq.timeout_s must be a number, got {rabbit['timeout_s']!r}"
        ) from exc

    rabbitmq_config = RabbitMQConfig(
        host=str(rabbit["host"]),
        username=str(rabbit["username"]),
        password=str(rabbit["password"]),
        port=_parse_int(rabbit.get("port", DEFAULT_MANAGEMENT_PORT), "RABBITMQ_PORT"),
        vhost=str(rabbit.get("vhost") or DEFAULT_VHOST),
        ssl=_parse_bool(rabbit.get("ssl", False), "RABBITMQ_SSL"),
        timeout_s=timeout_s,
    )

    # --- [server] ---
    transport = str(server.get("transport", "stdio")).lower()
    if transport not in TRANSPORTS:
        raise ConfigError(
            f"Invalid server.transport: {transport!r}. Expected one of {', '.join(TRANSPORTS)}."
        )
    server_config = ServerConfig(
        allow_mutative_tools=_parse_bool(
            server.get("allow_mutative_tools", False), "ALLOW_MUTATIVE_TOOLS"
        ),
        transport=transport,
        host=str(server.get("host", "127.0.0.1")),
        port=_parse_int(server.get("port", DEFAULT_SERVER_PORT), "server.port"),
    )

    # --- [logging] ---
    log_format = str(logging_section.get("format", "text")).lower()
    if log_format not in LOG_FORMATS:
        raise ConfigError(f"Invalid logging.format: {log_format!r}. Expected 'text' or 'json'.")
    logging_config = LoggingConfig(
        level=str(logging_section.get("level", "INFO")).upper(),
        format=log_format,
        log_root=logging_section.get("log_root"),
    )

    return AppConfig(rabbitmq=rabbitmq_config, server=server_config, logging=logging_config)
