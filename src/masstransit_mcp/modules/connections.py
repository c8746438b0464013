"""Connection module: client connections and consumers."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from masstransit_mcp.broker.models import ConnectionInfo, ConsumerInfo
from masstransit_mcp.config import AppConfig
from masstransit_mcp.modules.base import Module, ToolMeta

logger = logging.getLogger(__name__)


def _connected_at(millis: int | None) -> str:
    if millis is None:
        return "unknown"
    return datetime.fromtimestamp(millis / 1000, tz=UTC).isoformat(timespec="milliseconds")


def _client_product(connection: ConnectionInfo) -> str:
    props = connection.client_properties
    return str(props.get("product") or props.get("connection_name") or "unknown")


def render_connections(connections: list[ConnectionInfo]) -> str:
    if not connections:
        return "No active connections."
    lines = [f"Active connections: {len(connections)}\n"]
    for c in connections:
        lines.extend(
            [
                c.name,
                f"  User: {c.user} | Vhost: {c.vhost} | State: {c.state}",
                f"  Channels: {c.channels} | Client: {_client_product(c)}",
                f"  From: {c.peer_host}:{c.peer_port} -> {c.host}:{c.port}",
                f"  Connected: {_connected_at(c.connected_at)}",
                "",
            ]
        )
    return "\n".join(lines)


def render_consumers(consumers: list[ConsumerInfo]) -> str:
    if not consumers:
        return "No active consumers."
    lines = [f"Active consumers: {len(consumers)}\n"]
    for c in consumers:
        lines.extend(
            [
                f"Queue: {c.queue.name}",
                f"  Tag: {c.consumer_tag}",
                f"  Connection: {c.channel_details.connection_name}",
                f"  User: {c.channel_details.user} | Prefetch: {c.prefetch_count}",
                f"  Ack Required: {c.ack_required} | Active: {c.active}",
                "",
            ]
        )
    return "\n".join(lines)


class ConnectionsModule(Module):
    @property
    def name(self) -> str:
        return "connections"

    def tool_metadata(self) -> dict[str, ToolMeta]:
        return {"list_connections": ToolMeta(), "list_consumers": ToolMeta()}

    async def register_tools(self, mcp: Any, client: Any, config: AppConfig) -> None:
        @mcp.tool()
        async def list_connections() -> str:
            """List active RabbitMQ connections with client info, state, and
            channel count."""
            return render_connections(await client.list_connections())

        @mcp.tool()
        async def list_consumers(vhost: str | None = None) -> str:
            """List active consumers with their queue, prefetch, and connection."""
            return render_consumers(await client.list_consumers(vhost))
