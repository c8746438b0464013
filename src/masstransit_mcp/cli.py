"""CLI for the RabbitMQ MassTransit MCP server."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path

import click

from masstransit_mcp import __version__
from masstransit_mcp.config import TRANSPORTS, AppConfig, ConfigError, load_config

logger = logging.getLogger(__name__)

_CONFIG_OPTION = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="TOML config file (default: $MASSTRANSIT_MCP_CONFIG, else environment only)",
)


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """MCP server for inspecting RabbitMQ brokers used by MassTransit services."""


def _load_or_exit(config_path: Path | None) -> AppConfig:
    try:
        return load_config(config_path)
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)


@cli.command()
@_CONFIG_OPTION
@click.option(
    "--allow-mutative-tools",
    is_flag=True,
    default=False,
    help="Register tools that publish, move, purge or republish messages",
)
@click.option(
    "--transport",
    type=click.Choice(TRANSPORTS),
    default=None,
    help="MCP transport (default: from config, else stdio)",
)
@click.option("--port", type=int, default=None, help="Port for the sse/http transports")
def serve(
    config_path: Path | None,
    allow_mutative_tools: bool,
    transport: str | None,
    port: int | None,
) -> None:
    """Run the MCP server."""
    config = _load_or_exit(config_path)
    if allow_mutative_tools:
        config.server.allow_mutative_tools = True
    if transport:
        config.server.transport = transport
    if port is not None:
        config.server.port = port
    asyncio.run(_serve(config))


async def _serve(config: AppConfig) -> None:
    # Deferred so that `tools` and `check-config` stay cheap to import.
    from masstransit_mcp.broker.client import ManagementClient
    from masstransit_mcp.core.logging import configure_logging
    from masstransit_mcp.core.telemetry import init_telemetry
    from masstransit_mcp.server import SERVER_NAME, build_server, run_server

    configure_logging(config.logging.level, config.logging.format, config.logging.log_root)
    init_telemetry(SERVER_NAME)

    rabbit = config.rabbitmq
    client = ManagementClient(rabbit)
    try:
        mcp = await build_server(config, client)
        logger.info(
            "RabbitMQ MassTransit MCP server running (%s:%d, vhost: %s, mutative tools: %s)",
            rabbit.host,
            rabbit.port,
            rabbit.vhost,
            "enabled" if config.server.allow_mutative_tools else "disabled",
        )
        await run_server(mcp, config)
    finally:
        await client.aclose()


@cli.command()
@click.option(
    "--allow-mutative-tools",
    is_flag=True,
    default=False,
    help="Include tools that are only registered when mutative tools are allowed",
)
def tools(allow_mutative_tools: bool) -> None:
    """List the tools each module registers, without contacting the broker."""
    from masstransit_mcp.modules.registry import default_registry

    for module in default_registry().load_all():
        metadata = module.tool_metadata()
        names = module.tool_names(allow_mutative=allow_mutative_tools)
        if not names:
            continue
        click.echo(f"{module.name}:")
        for name in names:
            suffix = " (destructive)" if metadata[name].destructive else ""
            click.echo(f"  {name}{suffix}")


@cli.command("check-config")
@_CONFIG_OPTION
def check_config(config_path: Path | None) -> None:
    """Validate configuration and print it with the password masked."""
    config = _load_or_exit(config_path)
    rabbit = dataclasses.replace(config.rabbitmq, password="********")
    click.echo(f"Management API: {rabbit.base_url}")
    for section, values in (
        ("rabbitmq", dataclasses.asdict(rabbit)),
        ("server", dataclasses.asdict(config.server)),
        ("logging", dataclasses.asdict(config.logging)),
    ):
        click.echo(f"[{section}]")
        for key, value in values.items():
            click.echo(f"  {key} = {value}")
