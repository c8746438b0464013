"""Overview module: cluster-wide totals and rates."""

from __future__ import annotations

import logging
from typing import Any

from masstransit_mcp.broker.models import MessageStats, OverviewInfo
from masstransit_mcp.config import AppConfig
from masstransit_mcp.modules.base import Module, ToolMeta

logger = logging.getLogger(__name__)


def format_rates(stats: MessageStats) -> list[str]:
    """Publish/deliver/ack rate lines shared by the overview and queue views."""
    return [
        f"  Publish: {MessageStats.rate_of(stats.publish_details)}/s",
        f"  Deliver: {MessageStats.rate_of(stats.deliver_details)}/s",
        f"  Ack: {MessageStats.rate_of(stats.ack_details)}/s",
    ]


def render_overview(overview: OverviewInfo) -> str:
    queues = overview.queue_totals
    objects = overview.object_totals
    lines = [
        f"Cluster: {overview.cluster_name}",
        f"RabbitMQ: {overview.rabbitmq_version} | Erlang: {overview.erlang_version}",
        f"Node: {overview.node}",
        "",
        "Queue Totals:",
        f"  Messages: {queues.messages}",
        f"  Ready: {queues.messages_ready}",
        f"  Unacknowledged: {queues.messages_unacknowledged}",
        "",
        "Object Totals:",
        f"  Queues: {objects.queues}",
        f"  Exchanges: {objects.exchanges}",
        f"  Connections: {objects.connections}",
        f"  Channels: {objects.channels}",
        f"  Consumers: {objects.consumers}",
    ]
    if overview.message_stats is not None:
        lines.extend(["", "Message Rates:", *format_rates(overview.message_stats)])
    return "\n".join(lines)


class OverviewModule(Module):
    """Cluster overview tool."""

    @property
    def name(self) -> str:
        return "overview"

    def tool_metadata(self) -> dict[str, ToolMeta]:
        return {"get_overview": ToolMeta()}

    async def register_tools(self, mcp: Any, client: Any, config: AppConfig) -> None:
        @mcp.tool()
        async def get_overview() -> str:
            """Get RabbitMQ cluster overview: queue totals, connection counts,
            message rates, and version info."""
            return render_overview(await client.get_overview())
