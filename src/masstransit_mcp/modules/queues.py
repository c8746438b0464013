"""Queue module: list, inspect and purge queues."""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from masstransit_mcp.broker.models import MessageStats, QueueInfo
from masstransit_mcp.config import AppConfig
from masstransit_mcp.modules.base import Module, ToolMeta
from masstransit_mcp.modules.overview import format_rates

logger = logging.getLogger(__name__)

QueueSort = Literal["name", "messages", "consumers"]


def filter_by_name(items: list, pattern: str | None) -> list:
    """Keep items whose ``name`` contains *pattern*, ignoring case."""
    if not pattern:
        return list(items)
    needle = pattern.lower()
    return [item for item in items if needle in item.name.lower()]


def sort_queues(queues: list[QueueInfo], sort_by: QueueSort = "name") -> list[QueueInfo]:
    if sort_by == "messages":
        return sorted(queues, key=lambda q: q.messages, reverse=True)
    if sort_by == "consumers":
        return sorted(queues, key=lambda q: q.consumers, reverse=True)
    return sorted(queues, key=lambda q: q.name)


def render_queue_list(queues: list[QueueInfo]) -> str:
    if not queues:
        return "No queues found matching criteria."
    lines = [f"Found {len(queues)} queue(s):\n"]
    for q in queues:
        rate = MessageStats.rate_of(q.message_stats.publish_details) if q.message_stats else 0
        lines.extend(
            [
                q.name,
                f"  Messages: {q.messages} (ready: {q.messages_ready}, "
                f"unacked: {q.messages_unacknowledged})",
                f"  Consumers: {q.consumers} | State: {q.state} | Publish rate: {rate}/s",
                "",
            ]
        )
    return "\n".join(lines)


def render_queue(q: QueueInfo) -> str:
    lines = [
        f"Queue: {q.name}",
        f"Vhost: {q.vhost}",
        f"State: {q.state}",
        f"Node: {q.node or 'unknown'}",
        "",
        "Messages:",
        f"  Total: {q.messages}",
        f"  Ready: {q.messages_ready}",
        f"  Unacknowledged: {q.messages_unacknowledged}",
        "",
        f"Consumers: {q.consumers}",
        f"Memory: {q.memory / 1024:.1f} KB",
        f"Durable: {q.durable}",
        f"Auto-delete: {q.auto_delete}",
        f"Exclusive: {q.exclusive}",
    ]
    if q.policy:
        lines.append(f"Policy: {q.policy}")
    if q.message_stats is not None:
        lines.extend(["", "Rates:", *format_rates(q.message_stats)])
    if q.arguments:
        lines.extend(["", "Arguments:", json.dumps(q.arguments, indent=2)])
    return "\n".join(lines)


class QueuesModule(Module):
    """Queue listing and inspection, plus purge when mutative tools are allowed."""

    @property
    def name(self) -> str:
        return "queues"

    def tool_metadata(self) -> dict[str, ToolMeta]:
        return {
            "list_queues": ToolMeta(),
            "get_queue": ToolMeta(),
            "purge_queue": ToolMeta(destructive=True),
        }

    async def register_tools(self, mcp: Any, client: Any, config: AppConfig) -> None:
        @mcp.tool()
        async def list_queues(
            vhost: str | None = None,
            name_pattern: str | None = None,
            sort_by: QueueSort = "name",
        ) -> str:
            """List queues with message depth, consumer count, and rates.

            Filter by vhost and by a case-insensitive name substring; sort by
            name (default), messages, or consumers.
            """
            queues = filter_by_name(await client.list_queues(vhost), name_pattern)
            return render_queue_list(sort_queues(queues, sort_by))

        @mcp.tool()
        async def get_queue(name: str, vhost: str | None = None) -> str:
            """Get detailed stats for a queue: depth, rates, consumers, memory,
            policy, arguments."""
            return render_queue(await client.get_queue(name, vhost))

        if not config.server.allow_mutative_tools:
            return

        @mcp.tool()
        async def purge_queue(name: str, vhost: str | None = None) -> str:
            """Purge all messages from a queue. DESTRUCTIVE: messages cannot be
            recovered."""
            queue = await client.get_queue(name, vhost)
            await client.purge_queue(name, vhost)
            logger.warning("Purged queue %s (%d message(s))", name, queue.messages)
            return f'Purged queue "{name}": {queue.messages} message(s) removed.'
