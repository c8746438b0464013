"""Abstract base class for tool modules."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any

from masstransit_mcp.config import AppConfig


@dataclass
class ToolMeta:
    """Metadata for a single MCP tool registered by a module.

    Attributes:
        destructive: The tool changes broker state. Destructive tools are
            only registered when mutative tools are allowed and are
            annotated with ``destructiveHint`` for MCP clients.
    """

    destructive: bool = False


class Module(abc.ABC):
    """A group of related MCP tools.

    Subclasses register their tools on the server and describe them through
    :meth:`tool_metadata`. Modules only talk to the broker through the
    management client they are given.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Unique module name (e.g., 'queues', 'masstransit')."""
        ...

    @abc.abstractmethod
    async def register_tools(self, mcp: Any, client: Any, config: AppConfig) -> None:
        """Register MCP tools on the FastMCP server.

        Parameters
        ----------
        mcp:
            The FastMCP server (or a proxy with the same ``tool()`` API).
        client:
            A :class:`~masstransit_mcp.broker.client.ManagementClient`.
        config:
            Application config. Destructive tools must be skipped unless
            ``config.server.allow_mutative_tools`` is set.
        """
        ...

    def tool_metadata(self) -> dict[str, ToolMeta]:
        """Return metadata for tools registered by this module.

        Tools that are not listed are treated as read-only.
        """
        return {}

    def tool_names(self, *, allow_mutative: bool) -> list[str]:
        """Names of the tools this module registers, in metadata order."""
        return [
            name
            for name, meta in self.tool_metadata().items()
            if allow_mutative or not meta.destructive
        ]
