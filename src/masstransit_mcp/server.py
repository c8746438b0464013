"""FastMCP server assembly and transports.

:func:`build_server` creates the server and lets every module register its
tools through :class:`_SpanWrappingMCP`, which wraps each handler in a
``masstransit.tool.<name>`` span and marks destructive tools for MCP clients.
"""

from __future__ import annotations

import functools
import logging
from typing import Any

import uvicorn
from fastmcp import FastMCP
from mcp.types import ToolAnnotations

from masstransit_mcp.broker.client import ManagementClient
from masstransit_mcp.config import AppConfig
from masstransit_mcp.core.telemetry import tool_span
from masstransit_mcp.modules.base import Module, ToolMeta
from masstransit_mcp.modules.registry import ModuleRegistry, default_registry

logger = logging.getLogger(__name__)

SERVER_NAME = "rabbitmq-masstransit"
SERVER_INSTRUCTIONS = (
    "Inspect a RabbitMQ broker used by MassTransit services: queues, exchanges, "
    "connections, and _error/_skipped queues with decoded fault details."
)


class ModuleToolValidationError(ValueError):
    """Raised when a module registers a tool it does not declare, or a
    destructive tool while mutative tools are disabled."""


class _SpanWrappingMCP:
    """Proxy around FastMCP that auto-wraps tool handlers with tool_span.

    When a module calls ``mcp.tool()`` this proxy intercepts the
    registration, checks the tool against the module's
    :meth:`~Module.tool_metadata`, adds ``destructiveHint`` for destructive
    tools, and wraps the handler in a span.

    All other attribute access is forwarded to the underlying FastMCP instance.
    """

    def __init__(self, mcp: FastMCP, module: Module, *, allow_mutative: bool) -> None:
        self._mcp = mcp
        self._module_name = module.name
        self._metadata = module.tool_metadata()
        self._allow_mutative = allow_mutative
        self.registered_tool_names: list[str] = []

    def _meta_for(self, tool_name: str) -> ToolMeta:
        meta = self._metadata.get(tool_name)
        if meta is None:
            raise ModuleToolValidationError(
                f"Module '{self._module_name}' registered undeclared tool '{tool_name}'"
            )
        if meta.destructive and not self._allow_mutative:
            raise ModuleToolValidationError(
                f"Module '{self._module_name}' registered destructive tool "
                f"'{tool_name}' while mutative tools are disabled"
            )
        return meta

    def tool(self, *args, **kwargs):
        """Return a decorator that wraps the handler with tool_span."""

        def wrapper(fn):  # noqa: ANN001, ANN202
            tool_name = kwargs.get("name") or fn.__name__
            meta = self._meta_for(tool_name)
            tool_kwargs = dict(kwargs)
            if meta.destructive:
                tool_kwargs.setdefault("annotations", ToolAnnotations(destructiveHint=True))

            @functools.wraps(fn)
            async def instrumented(*args, **kwargs):  # noqa: ANN002, ANN003, ANN202
                with tool_span(tool_name):
                    return await fn(*args, **kwargs)

            self.registered_tool_names.append(tool_name)
            return self._mcp.tool(*args, **tool_kwargs)(instrumented)

        return wrapper

    def __getattr__(self, name: str) -> Any:
        return getattr(self._mcp, name)


async def build_server(
    config: AppConfig,
    client: ManagementClient,
    registry: ModuleRegistry | None = None,
) -> FastMCP:
    """Create the MCP server and register every module's tools."""
    mcp = FastMCP(SERVER_NAME, instructions=SERVER_INSTRUCTIONS)
    allow_mutative = config.server.allow_mutative_tools
    for module in (registry or default_registry()).load_all():
        proxy = _SpanWrappingMCP(mcp, module, allow_mutative=allow_mutative)
        await module.register_tools(proxy, client, config)
        logger.debug(
            "Module %s registered %d tool(s): %s",
            module.name,
            len(proxy.registered_tool_names),
            ", ".join(proxy.registered_tool_names),
        )
    return mcp


async def run_server(mcp: FastMCP, config: AppConfig) -> None:
    """Serve *mcp* on the configured transport until it stops."""
    transport = config.server.transport
    if transport == "stdio":
        await mcp.run_async(transport="stdio")
        return

    app = mcp.http_app(transport="sse" if transport == "sse" else "http")
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.server.host,
            port=config.server.port,
            log_level="info",
            timeout_graceful_shutdown=0,
        )
    )
    logger.info(
        "Serving %s transport on %s:%d", transport, config.server.host, config.server.port
    )
    await server.serve()
